"""
payout_kernel.domain.types -- Status enums and immutable payment snapshots.

ZERO I/O.  Frozen dataclasses with enum status fields, following the
batch DTO conventions used throughout the payout packages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PaymentStatus(str, Enum):
    """Lifecycle status of a payment record."""

    PENDING = "pending"
    INVOICED = "invoiced"
    RECEIVED = "received"
    OVERDUE = "overdue"
    FAILED = "failed"


class PaymentType(str, Enum):
    ADVANCE = "advance"
    MILESTONE = "milestone"
    COMPLETION = "completion"
    AMC = "amc"
    MOU_SIGNING = "mou_signing"
    DEPLOYMENT = "deployment"
    ACCEPTANCE = "acceptance"


class SubjectType(str, Enum):
    """What a payment is for: exactly one subject reference is set."""

    SOFTWARE = "software"  # solution phase
    TRAINING = "training"  # training program
    CONTENT = "content"  # content order


class RecipientType(str, Enum):
    """Who receives a share of an approved payment."""

    BUILDER = "builder"
    COHORT_MEMBER = "cohort_member"
    PRODUCTION_LEARNER = "production_learner"
    DEPARTMENT = "department"
    JICATE = "jicate"
    INSTITUTION = "institution"
    COUNCIL = "council"
    INFRASTRUCTURE = "infrastructure"
    REFERRAL_BONUS = "referral_bonus"


class EarningsStatus(str, Enum):
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


_CENTS = Decimal("0.01")


def as_money(value: Decimal | int | str) -> Decimal:
    """Drop storage-scale trailing zeros below the paisa.

    NUMERIC(38, 9) reads back as ``Decimal("10000.000000000")``; amounts
    that are whole paise come back as ``Decimal("10000.00")``.  Values
    with finer precision are returned unchanged.
    """
    amount = Decimal(value)
    cents = amount.quantize(_CENTS)
    return cents if cents == amount else amount


# Forward-only advancement of an earnings entry.
EARNINGS_TRANSITIONS: dict[EarningsStatus, EarningsStatus] = {
    EarningsStatus.CALCULATED: EarningsStatus.APPROVED,
    EarningsStatus.APPROVED: EarningsStatus.PAID,
}

# Statuses the auto-approval may move a payment into.
APPROVAL_STATUSES: frozenset[PaymentStatus] = frozenset(
    {PaymentStatus.INVOICED, PaymentStatus.RECEIVED}
)


@dataclass(frozen=True)
class PaymentSnapshot:
    """Immutable view of a payment as read by discovery.

    ``version`` is the optimistic-concurrency counter observed at read
    time; the disposition engine's conditional update only matches a row
    still carrying this version.
    """

    payment_id: UUID
    amount: Decimal
    status: PaymentStatus
    subject_type: SubjectType
    created_at: datetime
    version: int
    subject_category: str | None = None
    subject_title: str | None = None
    payment_type: PaymentType | None = None
    due_date: date | None = None
    flagged: bool = False
    flag_reason: str | None = None
    notes: str | None = None
    recipients: dict[str, str] = field(default_factory=dict)
