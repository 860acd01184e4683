"""
Pytest fixtures for the payout test suite.

Provides:
- A file-backed SQLite database per test (real commits, real SAVEPOINTs)
- A deterministic clock and a two-recipient test configuration
- A payment factory that controls ``created_at`` for window tests
- Captured structured logs

SQLite stores datetimes without an offset.  Every timestamp written by
the fixtures comes from the UTC ``DeterministicClock`` so stored values
compare consistently with the cutoff bound by discovery.
"""

import json
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from payout_config.schema import PayoutConfiguration
from payout_kernel.db.base import Base
from payout_kernel.db.engine import build_engine, import_all_models
from payout_kernel.db.immutability import register_immutability_listeners
from payout_kernel.domain.clock import DeterministicClock
from payout_kernel.domain.types import PaymentStatus
from payout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payout_kernel.models.payment import PaymentModel
from tests.helpers import TEST_ACTOR_ID, make_config


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payout logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_expired_batches()
            logs = captured_logs()
            assert any(r["message"] == "batch_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payout")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield


@pytest.fixture
def db_engine(tmp_path):
    import_all_models()
    engine = build_engine(f"sqlite:///{tmp_path / 'payouts.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


# =============================================================================
# Clock and configuration
# =============================================================================


@pytest.fixture
def clock():
    """2026-01-01 12:00:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def config() -> PayoutConfiguration:
    return make_config()


# =============================================================================
# Payment factory
# =============================================================================


_SUBJECT_COLUMNS = {
    "software": "phase_id",
    "training": "program_id",
    "content": "order_id",
}


@pytest.fixture
def make_payment(session_factory, clock):
    """
    Insert and commit one payment; returns the detached model.

    ``age_hours`` is measured back from the clock's current time.
    """

    def _make(
        amount: str | Decimal = "10000.00",
        age_hours: float = 50,
        subject: str = "software",
        category: str | None = None,
        status: PaymentStatus = PaymentStatus.PENDING,
        flagged: bool = False,
        flag_reason: str | None = None,
        due_date: date | None = None,
        title: str | None = "Inventory Portal",
        recipients: dict[str, str] | None = None,
        split_calculated: bool = False,
        notes: str | None = None,
        created_at: datetime | None = None,
    ) -> PaymentModel:
        payment = PaymentModel(
            amount=Decimal(amount),
            status=status.value,
            flagged=flagged,
            flag_reason=flag_reason,
            due_date=due_date,
            subject_category=category,
            subject_title=title,
            recipients=recipients,
            split_calculated=split_calculated,
            notes=notes,
            created_at=created_at or clock.now() - timedelta(hours=age_hours),
            updated_at=clock.now(),
            created_by_id=TEST_ACTOR_ID,
        )
        setattr(payment, _SUBJECT_COLUMNS[subject], uuid4())
        with session_factory() as s:
            s.add(payment)
            s.commit()
        return payment

    return _make
