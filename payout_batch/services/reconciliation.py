"""
SplitReconciliationService -- find and repair payments without a correct split.

Contract:
    - ``find_split_mismatches()`` reports every approved payment (status
      invoiced or received) whose earnings entries are missing or do not
      sum to the payment amount.  Pure read.
    - ``distribute_unsplit_payments()`` writes entries for approved
      payments that staff moved out of ``pending`` directly, without a
      split (``split_calculated = false``).  One SAVEPOINT and one commit
      per payment; the conditional update on ``split_calculated`` makes
      a concurrent or repeated distribution a skip.

Invariants enforced:
    - Entries are created at most once per payment.
    - A payment that already has entries is reported, never re-split.
"""

from __future__ import annotations

import time
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payout_batch.domain.types import (
    Disposition,
    DispositionResult,
    ReconciliationResult,
    SplitMismatch,
)
from payout_batch.services.disposition import append_note
from payout_config.schema import PayoutConfiguration
from payout_engines.revenue_split import compute_split
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import APPROVAL_STATUSES, PaymentSnapshot, as_money
from payout_kernel.exceptions import (
    ConcurrencyConflictError,
    ConfigurationError,
    PersistenceError,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.models.earnings import EarningsEntryModel
from payout_kernel.models.payment import PaymentModel
from payout_kernel.services.earnings_ledger import EarningsLedgerService

logger = get_logger("batch.reconciliation")

RECONCILED_MARKER = "[SPLIT-RECONCILED]"
_APPROVED_VALUES = tuple(s.value for s in APPROVAL_STATUSES)


class SplitReconciliationService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: PayoutConfiguration,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()

    def find_split_mismatches(self) -> list[SplitMismatch]:
        with self._session_factory() as session:
            payments = list(
                session.scalars(
                    select(PaymentModel)
                    .where(PaymentModel.status.in_(_APPROVED_VALUES))
                    .order_by(PaymentModel.created_at, PaymentModel.id)
                )
            )
            totals: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
            counts: dict[UUID, int] = defaultdict(int)
            for payment_id, amount in session.execute(
                select(EarningsEntryModel.payment_id, EarningsEntryModel.amount)
            ):
                totals[payment_id] += as_money(amount)
                counts[payment_id] += 1

        mismatches: list[SplitMismatch] = []
        for payment in payments:
            amount = as_money(payment.amount)
            entries_total = totals.get(payment.id, Decimal("0"))
            entry_count = counts.get(payment.id, 0)

            if entry_count == 0:
                reason = "No earnings entries"
            elif entries_total != amount:
                reason = f"Entries total {entries_total} does not equal amount {amount}"
            else:
                continue

            mismatches.append(
                SplitMismatch(
                    payment_id=payment.id,
                    status=payment.status,
                    amount=amount,
                    entries_total=entries_total,
                    entry_count=entry_count,
                    split_calculated=payment.split_calculated,
                    reason=reason,
                )
            )

        if mismatches:
            logger.warning(
                "split_mismatches_found",
                extra={"count": len(mismatches)},
            )
        return mismatches

    def distribute_unsplit_payments(self) -> ReconciliationResult:
        now = self._clock.now()
        batch_id = f"reconcile_{now:%Y%m%dT%H%M%S}"
        actor_id = self._config.batch.actor_id

        with self._session_factory() as session:
            snapshots = [
                p.to_snapshot()
                for p in session.scalars(
                    select(PaymentModel)
                    .where(
                        PaymentModel.status.in_(_APPROVED_VALUES),
                        PaymentModel.split_calculated.is_(False),
                        ~PaymentModel.earnings.any(),
                    )
                    .order_by(PaymentModel.created_at, PaymentModel.id)
                )
            ]
            session.commit()

            results = []
            for snapshot in snapshots:
                results.append(self._distribute(session, snapshot, batch_id, actor_id))
                session.commit()

        logger.info(
            "unsplit_payments_distributed",
            extra={
                "batch_id": batch_id,
                "considered": len(snapshots),
                "processed": sum(1 for r in results if r.is_approved),
            },
        )
        return ReconciliationResult(
            as_of=now,
            considered=len(snapshots),
            distributed=tuple(results),
        )

    def _distribute(
        self,
        session: Session,
        snapshot: PaymentSnapshot,
        batch_id: str,
        actor_id: UUID,
    ) -> DispositionResult:
        started = time.monotonic()

        def _result(outcome: Disposition, reason: str, **kwargs) -> DispositionResult:
            return DispositionResult(
                payment_id=snapshot.payment_id,
                outcome=outcome,
                reason=reason,
                amount=snapshot.amount,
                subject_title=snapshot.subject_title,
                duration_ms=int((time.monotonic() - started) * 1000),
                **kwargs,
            )

        try:
            with session.begin_nested():
                now = self._clock.now()
                claimed = session.execute(
                    update(PaymentModel)
                    .where(
                        PaymentModel.id == snapshot.payment_id,
                        PaymentModel.split_calculated.is_(False),
                        PaymentModel.version == snapshot.version,
                    )
                    .values(
                        split_calculated=True,
                        notes=append_note(
                            snapshot.notes,
                            f"{RECONCILED_MARKER} {batch_id} at {now.isoformat()}",
                        ),
                        version=PaymentModel.version + 1,
                        updated_at=now,
                        updated_by_id=actor_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    raise ConcurrencyConflictError(
                        "Payment", str(snapshot.payment_id), expected="unsplit",
                    )
                split = compute_split(snapshot, self._config.revenue_splits)
                EarningsLedgerService(session, self._clock).record_split(
                    split, batch_id=batch_id, actor_id=actor_id,
                )
        except ConcurrencyConflictError:
            return _result(Disposition.SKIPPED, "Split already distributed")
        except ConfigurationError as exc:
            logger.error(
                "split_distribution_failed",
                extra={
                    "payment_id": str(snapshot.payment_id),
                    "error_code": exc.code,
                    "cause": str(exc),
                },
            )
            return _result(Disposition.FAILED, str(exc), error_code=exc.code)
        except SQLAlchemyError as exc:
            error = PersistenceError(
                "reconciliation", str(snapshot.payment_id), type(exc).__name__,
            )
            logger.error(
                "split_distribution_failed",
                extra={
                    "payment_id": str(snapshot.payment_id),
                    "error_code": error.code,
                    "cause": str(exc),
                },
            )
            return _result(
                Disposition.FAILED,
                f"Persistence failure ({type(exc).__name__})",
                error_code=error.code,
            )

        return _result(
            Disposition.APPROVED,
            "Split distributed for payment approved outside the batch",
            split=split.summary(),
        )
