"""
payout_batch.domain.types -- Pure frozen dataclasses for the batch engine.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Every DTO is immutable.
    - BatchRunResult.total == processed + skipped + failed; ``remaining``
      counts eligible payments the run did not reach.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchRunStatus(str, Enum):
    """Run-level lifecycle status."""

    RUNNING = "running"
    COMPLETED = "completed"  # Every reached payment approved or skipped, none left
    PARTIALLY_COMPLETED = "partially_completed"  # Failures or leftovers
    FAILED = "failed"  # Nothing approved and at least one failure, or run aborted


class Disposition(str, Enum):
    """Outcome of one payment in one run."""

    APPROVED = "approved"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunTrigger(str, Enum):
    CRON = "cron"
    SCHEDULER = "scheduler"
    MANUAL = "manual"
    CLI = "cli"


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class DispositionResult:
    """Explicit per-payment outcome.

    ``split`` maps recipient type to the amount written (string form),
    present only when approved.
    """

    payment_id: UUID
    outcome: Disposition
    reason: str
    error_code: str | None = None
    split: dict[str, str] | None = None
    amount: Decimal | None = None
    subject_title: str | None = None
    duration_ms: int = 0

    @property
    def is_approved(self) -> bool:
        return self.outcome == Disposition.APPROVED


@dataclass(frozen=True)
class BatchRunResult:
    """Immutable result of one batch invocation."""

    batch_id: str
    status: BatchRunStatus
    total: int
    processed: int
    skipped: int
    failed: int
    remaining: int = 0
    results: tuple[DispositionResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    trigger: RunTrigger = RunTrigger.MANUAL
    # Discovered this run but cut off by the time budget, in run order.
    not_reached: tuple[UUID, ...] = ()

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "remaining": self.remaining,
        }


# =============================================================================
# Read views
# =============================================================================


@dataclass(frozen=True)
class BatchStatus:
    """Snapshot of the pending queue, used by dry runs."""

    as_of: datetime
    window_hours: int
    total_pending: int
    eligible_count: int
    flagged_count: int
    total_pending_amount: Decimal
    eligible_amount: Decimal
    oldest_pending_age_hours: int | None = None
    next_eligible_at: datetime | None = None


@dataclass(frozen=True)
class PendingPaymentView:
    """One pending payment with its countdown to auto-approval."""

    payment_id: UUID
    amount: Decimal
    subject_type: str
    subject_title: str | None
    created_at: datetime
    due_date: date | None
    hours_pending: float
    hours_remaining: float
    is_eligible: bool
    flagged: bool = False
    flag_reason: str | None = None


@dataclass(frozen=True)
class SplitMismatch:
    """An approved payment whose earnings entries do not match its amount."""

    payment_id: UUID
    status: str
    amount: Decimal
    entries_total: Decimal
    entry_count: int
    split_calculated: bool
    reason: str


@dataclass(frozen=True)
class ReconciliationResult:
    as_of: datetime
    considered: int
    distributed: tuple[DispositionResult, ...] = ()
    mismatches: tuple[SplitMismatch, ...] = field(default_factory=tuple)
