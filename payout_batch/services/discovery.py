"""
PaymentDiscovery -- find pending payments whose auto-approval window expired.

Contract:
    Pure reads.  ``find_expired_pending_payments`` returns immutable
    ``PaymentSnapshot`` DTOs carrying the ``version`` observed, which the
    disposition engine's conditional update later checks.

Invariants enforced:
    - Eligible means: status ``pending``, not flagged, and
      ``now - created_at >= window`` (exactly the window is eligible).
    - Order: due_date ascending with NULL due dates last, then
      created_at, then id.  Deterministic for identical data.
    - The window is measured against the ``now`` passed in, never the
      wall clock.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payout_batch.domain.types import BatchStatus, PendingPaymentView
from payout_kernel.domain.clock import ensure_utc
from payout_kernel.domain.types import PaymentSnapshot, PaymentStatus, as_money
from payout_kernel.logging_config import get_logger
from payout_kernel.models.payment import PaymentModel

logger = get_logger("batch.discovery")

DEFAULT_WINDOW_HOURS = 48


class PaymentDiscovery:
    def __init__(self, session: Session, window_hours: int = DEFAULT_WINDOW_HOURS):
        self._session = session
        self._window = timedelta(hours=window_hours)
        self._window_hours = window_hours

    def cutoff(self, now: datetime) -> datetime:
        """Latest ``created_at`` that is eligible at ``now``."""
        return now - self._window

    def _eligible_filter(self, now: datetime):
        return (
            PaymentModel.status == PaymentStatus.PENDING.value,
            PaymentModel.flagged.is_(False),
            PaymentModel.created_at <= self.cutoff(now),
        )

    def find_expired_pending_payments(
        self,
        now: datetime,
        limit: int | None = None,
    ) -> list[PaymentSnapshot]:
        stmt = (
            select(PaymentModel)
            .where(*self._eligible_filter(now))
            .order_by(
                PaymentModel.due_date.asc().nulls_last(),
                PaymentModel.created_at.asc(),
                PaymentModel.id.asc(),
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        snapshots = [p.to_snapshot() for p in self._session.scalars(stmt)]
        logger.debug(
            "expired_payments_discovered",
            extra={
                "count": len(snapshots),
                "limit": limit,
                "cutoff": self.cutoff(now).isoformat(),
            },
        )
        return snapshots

    def count_expired_pending_payments(self, now: datetime) -> int:
        return self._session.scalar(
            select(func.count(PaymentModel.id)).where(*self._eligible_filter(now))
        ) or 0

    def get_batch_status(self, now: datetime) -> BatchStatus:
        """Counts and amounts of the pending queue at ``now``."""
        rows = self._session.execute(
            select(
                PaymentModel.amount,
                PaymentModel.created_at,
                PaymentModel.flagged,
            ).where(PaymentModel.status == PaymentStatus.PENDING.value)
        ).all()

        cutoff = self.cutoff(now)
        total_amount = Decimal("0")
        eligible_amount = Decimal("0")
        eligible_count = 0
        flagged_count = 0
        oldest: datetime | None = None
        next_eligible_at: datetime | None = None

        for amount, created_at, flagged in rows:
            created_at = ensure_utc(created_at)
            total_amount += as_money(amount)
            if oldest is None or created_at < oldest:
                oldest = created_at
            if flagged:
                flagged_count += 1
                continue
            if created_at <= cutoff:
                eligible_count += 1
                eligible_amount += as_money(amount)
            else:
                becomes_eligible = created_at + self._window
                if next_eligible_at is None or becomes_eligible < next_eligible_at:
                    next_eligible_at = becomes_eligible

        oldest_age_hours = None
        if oldest is not None:
            oldest_age_hours = max(
                0, math.floor((now - oldest).total_seconds() / 3600)
            )

        return BatchStatus(
            as_of=now,
            window_hours=self._window_hours,
            total_pending=len(rows),
            eligible_count=eligible_count,
            flagged_count=flagged_count,
            total_pending_amount=total_amount,
            eligible_amount=eligible_amount,
            oldest_pending_age_hours=oldest_age_hours,
            next_eligible_at=next_eligible_at,
        )

    def get_pending_payments_with_details(self, now: datetime) -> list[PendingPaymentView]:
        """Every pending payment, oldest first, with its countdown."""
        payments = self._session.scalars(
            select(PaymentModel)
            .where(PaymentModel.status == PaymentStatus.PENDING.value)
            .order_by(PaymentModel.created_at.asc(), PaymentModel.id.asc())
        )

        views: list[PendingPaymentView] = []
        for payment in payments:
            created_at = ensure_utc(payment.created_at)
            hours_pending = (now - created_at).total_seconds() / 3600
            hours_remaining = max(0.0, self._window_hours - hours_pending)
            views.append(
                PendingPaymentView(
                    payment_id=payment.id,
                    amount=as_money(payment.amount),
                    subject_type=payment.subject_type.value,
                    subject_title=payment.subject_title,
                    created_at=created_at,
                    due_date=payment.due_date,
                    hours_pending=round(hours_pending, 1),
                    hours_remaining=round(hours_remaining, 1),
                    is_eligible=(not payment.flagged and created_at <= self.cutoff(now)),
                    flagged=payment.flagged,
                    flag_reason=payment.flag_reason,
                )
            )
        return views
