"""
EarningsLedgerService -- write and advance earnings entries.

Responsibility:
    Persists the lines of a computed revenue split as earnings entries
    and advances entries through calculated -> approved -> paid.
    Provides per-payment and per-recipient-type read views.

Architecture position:
    Kernel > Services.  Called by the batch disposition engine (inside its
    per-payment SAVEPOINT), by split reconciliation, and by staff tooling.

Invariants enforced:
    - One entry per (payment, recipient type): UNIQUE constraint; a
      duplicate insert raises IntegrityError to the caller's SAVEPOINT.
    - Forward-only status: a backward or skipping transition raises
      InvalidEarningsTransitionError before anything is flushed.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import EARNINGS_TRANSITIONS, EarningsStatus, as_money
from payout_kernel.exceptions import InvalidEarningsTransitionError, LedgerError
from payout_kernel.logging_config import get_logger
from payout_kernel.models.earnings import EarningsEntryModel

if TYPE_CHECKING:
    from payout_engines.revenue_split import SplitResult

logger = get_logger("services.earnings_ledger")


@dataclass(frozen=True)
class RecipientTypeSummary:
    recipient_type: str
    calculated: Decimal
    approved: Decimal
    paid: Decimal
    entry_count: int

    @property
    def total(self) -> Decimal:
        return self.calculated + self.approved + self.paid


class EarningsLedgerService:
    """
    Service over the ``earnings_entries`` table.

    Guarantees:
        - ``record_split`` writes exactly one entry per split line, all in
          status ``calculated``.
        - ``approve_entries`` / ``mark_paid`` move every requested entry one
          step forward or raise without changing any of them.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record_split(
        self,
        split: SplitResult,
        batch_id: str | None,
        actor_id: UUID,
        notes: str | None = None,
    ) -> list[EarningsEntryModel]:
        """Insert the split lines of one payment and flush."""
        entries = [
            EarningsEntryModel(
                payment_id=split.payment_id,
                recipient_type=line.recipient_type,
                recipient_id=line.recipient_id,
                recipient_name=line.recipient_name,
                amount=line.amount,
                share=line.share,
                status=EarningsStatus.CALCULATED.value,
                batch_id=batch_id,
                notes=notes,
                created_by_id=actor_id,
            )
            for line in split.lines
        ]
        self._session.add_all(entries)
        self._session.flush()

        logger.debug(
            "earnings_entries_recorded",
            extra={
                "payment_id": str(split.payment_id),
                "entry_count": len(entries),
                "batch_id": batch_id,
                "amount": str(split.amount),
            },
        )
        return entries

    def entries_for_payment(self, payment_id: UUID) -> list[EarningsEntryModel]:
        return list(
            self._session.scalars(
                select(EarningsEntryModel)
                .where(EarningsEntryModel.payment_id == payment_id)
                .order_by(EarningsEntryModel.recipient_type)
            )
        )

    def approve_entries(
        self, entry_ids: Sequence[UUID], actor_id: UUID,
    ) -> list[EarningsEntryModel]:
        """calculated -> approved, stamping ``approved_at``."""
        return self._advance(entry_ids, EarningsStatus.APPROVED, actor_id)

    def mark_paid(
        self, entry_ids: Sequence[UUID], actor_id: UUID,
    ) -> list[EarningsEntryModel]:
        """approved -> paid, stamping ``paid_at``."""
        return self._advance(entry_ids, EarningsStatus.PAID, actor_id)

    def summary_by_recipient_type(self) -> dict[str, RecipientTypeSummary]:
        """Totals per recipient type, split by entry status.

        Summed in Decimal on the Python side; SQL SUM over NUMERIC is
        float arithmetic on some backends.
        """
        rows = self._session.execute(
            select(
                EarningsEntryModel.recipient_type,
                EarningsEntryModel.status,
                EarningsEntryModel.amount,
            ).order_by(EarningsEntryModel.recipient_type)
        ).all()

        totals: dict[str, dict[str, Decimal]] = {}
        counts: dict[str, int] = {}
        for recipient_type, status, amount in rows:
            by_status = totals.setdefault(
                recipient_type, {s.value: Decimal("0") for s in EarningsStatus}
            )
            by_status[status] += as_money(amount)
            counts[recipient_type] = counts.get(recipient_type, 0) + 1

        return {
            recipient_type: RecipientTypeSummary(
                recipient_type=recipient_type,
                calculated=by_status[EarningsStatus.CALCULATED.value],
                approved=by_status[EarningsStatus.APPROVED.value],
                paid=by_status[EarningsStatus.PAID.value],
                entry_count=counts[recipient_type],
            )
            for recipient_type, by_status in totals.items()
        }

    def _advance(
        self,
        entry_ids: Sequence[UUID],
        target: EarningsStatus,
        actor_id: UUID,
    ) -> list[EarningsEntryModel]:
        entries = self._load(entry_ids)

        # Validate all before touching any.
        for entry in entries:
            current = EarningsStatus(entry.status)
            if EARNINGS_TRANSITIONS.get(current) != target:
                raise InvalidEarningsTransitionError(
                    entry_id=str(entry.id),
                    from_status=current.value,
                    to_status=target.value,
                )

        now = self._clock.now()
        for entry in entries:
            entry.status = target.value
            if target == EarningsStatus.APPROVED:
                entry.approved_at = now
            else:
                entry.paid_at = now
            entry.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "earnings_entries_advanced",
            extra={
                "to_status": target.value,
                "entry_count": len(entries),
                "actor_id": str(actor_id),
            },
        )
        return entries

    def _load(self, entry_ids: Iterable[UUID]) -> list[EarningsEntryModel]:
        ids = list(dict.fromkeys(entry_ids))
        entries = list(
            self._session.scalars(
                select(EarningsEntryModel).where(EarningsEntryModel.id.in_(ids))
            )
        )
        found = {entry.id for entry in entries}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise LedgerError(f"Earnings entries not found: {', '.join(missing)}")
        return entries
