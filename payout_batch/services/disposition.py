"""
DispositionEngine -- approve, skip or fail one payment, atomically.

Contract:
    ``dispose()`` never raises for per-payment problems; it returns a
    ``DispositionResult`` with outcome APPROVED, SKIPPED or FAILED.

    APPROVED  -- conditional single-row UPDATE matched, the split was
                 computed and the earnings entries were inserted, all in
                 one SAVEPOINT.
    SKIPPED   -- the UPDATE matched zero rows (ConcurrencyConflictError):
                 the payment left ``pending``, was flagged, or was edited
                 since discovery.  Re-running a finished batch lands here.
    FAILED    -- ConfigurationError (no split bucket) or a database error.
                 The SAVEPOINT is rolled back, so the payment stays
                 ``pending`` for the next run.

Invariants enforced:
    - The transition and the entry inserts commit together or not at all.
    - The UPDATE checks status, flag and the snapshot ``version``; no
      read-then-write window.
    - Timestamps come from the injected Clock.

Non-goals:
    - Does NOT call ``session.commit()`` -- the processor commits after
      each payment.
"""

from __future__ import annotations

import time
from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_batch.domain.types import Disposition, DispositionResult
from payout_config.schema import PayoutConfiguration
from payout_engines.revenue_split import compute_split
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import PaymentSnapshot, PaymentStatus
from payout_kernel.exceptions import (
    ConcurrencyConflictError,
    ConfigurationError,
    PersistenceError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models.payment import PaymentModel
from payout_kernel.services.earnings_ledger import EarningsLedgerService

logger = get_logger("batch.disposition")

AUTO_MARKER = "[AUTO-PROCESSED]"
MANUAL_MARKER = "[MANUAL-PROCESSED]"


def append_note(existing: str | None, line: str) -> str:
    if existing:
        return f"{existing}\n{line}"
    return line


class DispositionEngine:
    def __init__(
        self,
        config: PayoutConfiguration,
        clock: Clock | None = None,
    ):
        self._config = config
        self._clock = clock or SystemClock()

    @property
    def approved_status(self) -> PaymentStatus:
        return PaymentStatus(self._config.batch.approved_status)

    def dispose(
        self,
        session: Session,
        snapshot: PaymentSnapshot,
        batch_id: str,
        *,
        manual: bool = False,
        actor_id: UUID | None = None,
    ) -> DispositionResult:
        """Decide and apply the outcome for one payment.

        ``manual`` is the admin override: the flag is ignored (and
        cleared) and the note records a manual approval.
        """
        with LogContext.bind(payment_id=str(snapshot.payment_id)):
            return self._dispose(
                session,
                snapshot,
                batch_id,
                manual,
                actor_id or self._config.batch.actor_id,
            )

    def _dispose(
        self,
        session: Session,
        snapshot: PaymentSnapshot,
        batch_id: str,
        manual: bool,
        actor_id: UUID,
    ) -> DispositionResult:
        payment_key = str(snapshot.payment_id)
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
                self._transition(session, snapshot, batch_id, now, manual, actor_id)
                split = compute_split(snapshot, self._config.revenue_splits)
                EarningsLedgerService(session, self._clock).record_split(
                    split, batch_id=batch_id, actor_id=actor_id,
                )
        except ConcurrencyConflictError as exc:
            logger.info(
                "payment_skipped",
                extra={"batch_id": batch_id, "reason": exc.code},
            )
            return _result(
                Disposition.SKIPPED,
                "Payment is no longer pending or changed since discovery",
            )
        except ConfigurationError as exc:
            logger.error(
                "payment_failed",
                extra={
                    "batch_id": batch_id,
                    "stage": "revenue_split",
                    "error_code": exc.code,
                    "cause": str(exc),
                },
            )
            return _result(Disposition.FAILED, str(exc), error_code=exc.code)
        except SQLAlchemyError as exc:
            error = PersistenceError("disposition", payment_key, type(exc).__name__)
            logger.error(
                "payment_failed",
                extra={
                    "batch_id": batch_id,
                    "stage": "disposition",
                    "error_code": error.code,
                    "cause": str(exc),
                },
            )
            return _result(
                Disposition.FAILED,
                f"Persistence failure ({type(exc).__name__}); payment left pending",
                error_code=error.code,
            )
        except Exception as exc:
            logger.exception(
                "payment_failed",
                extra={
                    "batch_id": batch_id,
                    "stage": "disposition",
                    "error_code": "UNHANDLED_EXCEPTION",
                },
            )
            return _result(
                Disposition.FAILED,
                f"Unexpected error ({type(exc).__name__}); payment left pending",
                error_code="UNHANDLED_EXCEPTION",
            )

        logger.info(
            "payment_approved",
            extra={
                "batch_id": batch_id,
                "amount": str(snapshot.amount),
                "status": self.approved_status.value,
                "entry_count": len(split.lines),
                "manual": manual,
            },
        )
        return _result(
            Disposition.APPROVED,
            self._approval_reason(manual),
            split=split.summary(),
        )

    def _approval_reason(self, manual: bool) -> str:
        if manual:
            return "Processed manually by admin override"
        return (
            f"Auto-approved after {self._config.batch.pending_window_hours}h"
            " pending window"
        )

    def _transition(
        self,
        session: Session,
        snapshot: PaymentSnapshot,
        batch_id: str,
        now: datetime,
        manual: bool,
        actor_id: UUID,
    ) -> None:
        """Conditional single-row UPDATE pending -> approved status.

        Raises:
            ConcurrencyConflictError: zero rows matched.
        """
        marker = MANUAL_MARKER if manual else AUTO_MARKER
        values = {
            "status": self.approved_status.value,
            "approved_at": now,
            "split_calculated": True,
            "processed_batch_id": batch_id,
            "notes": append_note(
                snapshot.notes, f"{marker} Batch {batch_id} at {now.isoformat()}"
            ),
            "version": PaymentModel.version + 1,
            "updated_at": now,
            "updated_by_id": actor_id,
        }
        if self.approved_status == PaymentStatus.RECEIVED:
            values["paid_at"] = now
        if manual:
            values["flagged"] = False
            values["flag_reason"] = None

        criteria = [
            PaymentModel.id == snapshot.payment_id,
            PaymentModel.status == PaymentStatus.PENDING.value,
            PaymentModel.version == snapshot.version,
        ]
        if not manual:
            criteria.append(PaymentModel.flagged.is_(False))

        result = session.execute(
            update(PaymentModel)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                "Payment",
                str(snapshot.payment_id),
                expected=f"pending v{snapshot.version}",
            )
