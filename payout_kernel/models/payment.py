"""
Module: payout_kernel.models.payment
Responsibility: ORM persistence for payment records.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Exactly one subject reference (phase / program / order) is set
      (CHECK constraint ck_payments_single_subject).
    - amount > 0 (CHECK constraint).
    - ``version`` is the optimistic concurrency counter; ORM updates bump
      and check it automatically (``version_id_col``), and the batch
      engine's conditional updates bump it explicitly.
    - Payments are never deleted (db/immutability.py).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_kernel.db.base import TrackedBase, UUIDString
from payout_kernel.domain.clock import ensure_utc
from payout_kernel.domain.types import (
    PaymentSnapshot,
    PaymentStatus,
    PaymentType,
    SubjectType,
    as_money,
)

if TYPE_CHECKING:
    from payout_kernel.models.earnings import EarningsEntryModel


class PaymentModel(TrackedBase):
    """A financial obligation tied to one solution phase, training program or content order."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN phase_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN program_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN order_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_payments_single_subject",
        ),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        Index("ix_payments_status_created_at", "status", "created_at"),
        Index("ix_payments_due_date", "due_date"),
    )

    phase_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    program_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    payment_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=PaymentStatus.PENDING.value,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Manual hold
    flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    flag_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    split_calculated: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    processed_batch_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )

    # Denormalized from the subject for split resolution and reporting
    subject_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subject_title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    recipients: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    earnings: Mapped[list["EarningsEntryModel"]] = relationship(
        "EarningsEntryModel",
        back_populates="payment",
        order_by="EarningsEntryModel.recipient_type",
    )

    @property
    def subject_type(self) -> SubjectType:
        if self.phase_id is not None:
            return SubjectType.SOFTWARE
        if self.program_id is not None:
            return SubjectType.TRAINING
        if self.order_id is not None:
            return SubjectType.CONTENT
        raise ValueError(f"Payment {self.id} has no subject reference")

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING.value

    def to_snapshot(self) -> PaymentSnapshot:
        return PaymentSnapshot(
            payment_id=self.id,
            amount=as_money(self.amount),
            status=PaymentStatus(self.status),
            subject_type=self.subject_type,
            created_at=ensure_utc(self.created_at),
            version=self.version,
            subject_category=self.subject_category,
            subject_title=self.subject_title,
            payment_type=(
                PaymentType(self.payment_type) if self.payment_type else None
            ),
            due_date=self.due_date,
            flagged=self.flagged,
            flag_reason=self.flag_reason,
            notes=self.notes,
            recipients=dict(self.recipients or {}),
        )
