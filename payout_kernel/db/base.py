"""
Module: payout_kernel.db.base
Responsibility: Declarative base for every payout table: UUID primary keys,
    column types for money and time, and the audit columns shared by
    payments, earnings entries and batch runs.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; MUST NOT import from models/, services/ or outer packages.

Invariants enforced:
    - Primary keys are uuid4 values, stored as 36-character strings so the
      same schema works on SQLite and PostgreSQL.
    - ``Mapped[Decimal]`` is NUMERIC(38, 9); money is never a float column.
    - Every tracked row records who created it; the batch engine writes as
      the configured batch actor.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, MappedColumn, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(38, 9)
TIMESTAMP = DateTime(timezone=True)


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, canonical hyphenated text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        # Accept either form from callers; always store the canonical text.
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        datetime: TIMESTAMP,
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


def _server_timestamp(*, refresh_on_update: bool) -> MappedColumn:
    return mapped_column(
        TIMESTAMP,
        server_default=func.now(),
        onupdate=func.now() if refresh_on_update else None,
        nullable=False,
    )


class TrackedBase(Base):
    """
    Audit columns.

    Services pass ``created_at`` / ``updated_at`` from their Clock where the
    value matters to business rules (the pending window is measured from
    ``created_at``); the server default covers every other insert.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = _server_timestamp(refresh_on_update=False)
    updated_at: Mapped[datetime] = _server_timestamp(refresh_on_update=True)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
