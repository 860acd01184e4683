"""
Module: payout_kernel.models.earnings
Responsibility: ORM persistence for the earnings ledger -- one row per
    (payment, recipient type) produced by the revenue split.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - UNIQUE (payment_id, recipient_type): a payment's split is written once.
    - Rows are never deleted, and only ``status`` (forward), ``approved_at``,
      ``paid_at`` and the TrackedBase audit fields may change
      (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.domain.types import EarningsStatus

if TYPE_CHECKING:
    from payout_kernel.models.payment import PaymentModel


class EarningsEntryModel(TrackedBase):
    """One recipient's share of one approved payment."""

    __tablename__ = "earnings_entries"

    __table_args__ = (
        UniqueConstraint(
            "payment_id", "recipient_type", name="uq_earnings_payment_recipient",
        ),
        CheckConstraint("amount >= 0", name="ck_earnings_amount_non_negative"),
        Index("ix_earnings_recipient", "recipient_type", "recipient_id"),
        Index("ix_earnings_status", "status"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id"),
        nullable=False,
    )
    recipient_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recipient_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    share: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=EarningsStatus.CALCULATED.value,
    )
    batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment: Mapped["PaymentModel"] = relationship(
        "PaymentModel",
        back_populates="earnings",
        foreign_keys=[payment_id],
    )
