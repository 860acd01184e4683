"""
ORM models for batch run persistence.

Contract:
    BatchRunModel and BatchRunItemModel record every invocation and each
    payment's outcome for audit.  BatchRunLockModel is the overlap guard
    row.  Run and item models have ``to_dto()`` methods.

Architecture: payout_batch/models. Imports from payout_kernel.db.base only.

Invariants enforced:
    - ``batch_id`` is UNIQUE on BatchRunModel.
    - ``name`` is UNIQUE on BatchRunLockModel: at most one holder per lock.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from payout_batch.domain.types import BatchRunResult, DispositionResult


class BatchRunModel(TrackedBase):
    """Persistent record of one batch invocation."""

    __tablename__ = "batch_runs"

    __table_args__ = (
        Index("ix_batch_runs_status", "status"),
        Index("ix_batch_runs_started_at", "started_at"),
    )

    batch_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger: Mapped[str] = mapped_column(String(50), nullable=False)
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    config_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["BatchRunItemModel"]] = relationship(
        "BatchRunItemModel",
        back_populates="run",
        foreign_keys="BatchRunItemModel.run_id",
        order_by="BatchRunItemModel.item_index",
    )

    def to_dto(self) -> BatchRunResult:
        from payout_batch.domain.types import (
            BatchRunResult,
            BatchRunStatus,
            RunTrigger,
        )

        return BatchRunResult(
            batch_id=self.batch_id,
            status=BatchRunStatus(self.status),
            total=self.total,
            processed=self.processed,
            skipped=self.skipped,
            failed=self.failed,
            remaining=self.remaining,
            results=tuple(item.to_dto() for item in self.items),
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            trigger=RunTrigger(self.trigger),
        )


class BatchRunItemModel(TrackedBase):
    """One payment's outcome within a batch run."""

    __tablename__ = "batch_run_items"

    __table_args__ = (
        Index("ix_batch_run_items_run", "run_id", "item_index"),
        Index("ix_batch_run_items_payment", "payment_id"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    outcome: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    split_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    run: Mapped["BatchRunModel"] = relationship(
        "BatchRunModel",
        back_populates="items",
        foreign_keys=[run_id],
    )

    def to_dto(self) -> DispositionResult:
        from payout_batch.domain.types import Disposition, DispositionResult

        return DispositionResult(
            payment_id=self.payment_id,
            outcome=Disposition(self.outcome),
            reason=self.reason,
            error_code=self.error_code,
            split=self.split_summary,
            amount=self.amount,
            duration_ms=self.duration_ms,
        )

    @classmethod
    def from_dto(
        cls,
        dto: DispositionResult,
        run_id: UUID,
        item_index: int,
        created_by_id: UUID,
    ) -> BatchRunItemModel:
        return cls(
            run_id=run_id,
            item_index=item_index,
            payment_id=dto.payment_id,
            outcome=dto.outcome.value,
            reason=dto.reason,
            error_code=dto.error_code,
            amount=dto.amount,
            split_summary=dto.split,
            duration_ms=dto.duration_ms,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


class BatchRunLockModel(Base):
    """Overlap guard: one row per held lock name."""

    __tablename__ = "batch_run_locks"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    holder: Mapped[str] = mapped_column(String(100), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
