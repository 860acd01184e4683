"""
Tests for payout_kernel.services.earnings_ledger.

Entries are written from a computed split, advance forward only, and
roll up per recipient type in exact Decimal.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from payout_engines.revenue_split import compute_split
from payout_kernel.domain.clock import ensure_utc
from payout_kernel.domain.types import EarningsStatus
from payout_kernel.exceptions import InvalidEarningsTransitionError, LedgerError
from payout_kernel.services.earnings_ledger import EarningsLedgerService
from tests.helpers import BATCH_ACTOR_ID, TEST_ACTOR_ID


@pytest.fixture
def ledger(session, clock):
    return EarningsLedgerService(session, clock)


@pytest.fixture
def record_payment(make_payment, session, ledger, config):
    """Insert a payment and record its split; returns the entries."""

    def _record(amount="10000.00", **payment_kwargs):
        payment = make_payment(amount=amount, **payment_kwargs)
        split = compute_split(payment.to_snapshot(), config.revenue_splits)
        entries = ledger.record_split(split, batch_id="batch_test", actor_id=BATCH_ACTOR_ID)
        session.commit()
        return entries

    return _record


class TestRecordSplit:
    def test_one_entry_per_line(self, record_payment, ledger):
        entries = record_payment(recipients={"builder": "user-7"})

        stored = ledger.entries_for_payment(entries[0].payment_id)
        assert [(e.recipient_type, e.amount, e.share) for e in stored] == [
            ("builder", Decimal("6000.00"), Decimal("0.60")),
            ("institution", Decimal("4000.00"), Decimal("0.40")),
        ]
        assert all(e.status == EarningsStatus.CALCULATED.value for e in stored)
        assert all(e.batch_id == "batch_test" for e in stored)
        assert all(e.created_by_id == BATCH_ACTOR_ID for e in stored)
        assert stored[0].recipient_id == "user-7"
        assert stored[0].recipient_name == "Builder"

    def test_second_split_for_same_payment_is_rejected(
        self, make_payment, session, ledger, config,
    ):
        payment = make_payment()
        split = compute_split(payment.to_snapshot(), config.revenue_splits)
        ledger.record_split(split, batch_id="b1", actor_id=BATCH_ACTOR_ID)
        session.commit()

        with pytest.raises(IntegrityError):
            ledger.record_split(split, batch_id="b2", actor_id=BATCH_ACTOR_ID)
        session.rollback()

        assert len(ledger.entries_for_payment(payment.id)) == 2


class TestAdvance:
    def test_calculated_to_approved_to_paid(self, record_payment, ledger, session, clock):
        ids = [e.id for e in record_payment()]

        approved = ledger.approve_entries(ids, TEST_ACTOR_ID)
        session.commit()
        assert {e.status for e in approved} == {"approved"}
        assert all(ensure_utc(e.approved_at) == clock.now() for e in approved)

        clock.advance(3600)
        paid = ledger.mark_paid(ids, TEST_ACTOR_ID)
        session.commit()
        assert {e.status for e in paid} == {"paid"}
        assert all(ensure_utc(e.paid_at) == clock.now() for e in paid)
        assert all(e.updated_by_id == TEST_ACTOR_ID for e in paid)

    def test_skipping_a_step_changes_nothing(self, record_payment, ledger, session):
        entries = record_payment()
        ids = [e.id for e in entries]

        with pytest.raises(InvalidEarningsTransitionError) as exc_info:
            ledger.mark_paid(ids, TEST_ACTOR_ID)

        assert exc_info.value.code == "INVALID_EARNINGS_TRANSITION"
        assert exc_info.value.from_status == "calculated"
        assert exc_info.value.to_status == "paid"
        session.rollback()
        stored = ledger.entries_for_payment(entries[0].payment_id)
        assert {e.status for e in stored} == {"calculated"}

    def test_mixed_statuses_rejected_as_a_whole(self, record_payment, ledger, session):
        first, second = record_payment()
        ledger.approve_entries([first.id], TEST_ACTOR_ID)
        session.commit()

        with pytest.raises(InvalidEarningsTransitionError):
            ledger.approve_entries([first.id, second.id], TEST_ACTOR_ID)

        assert second.status == "calculated"

    def test_unknown_entry(self, ledger):
        missing = uuid4()

        with pytest.raises(LedgerError, match=str(missing)):
            ledger.approve_entries([missing], TEST_ACTOR_ID)


class TestSummary:
    def test_totals_by_recipient_type_and_status(self, record_payment, ledger, session):
        first = record_payment(amount="10000.00")
        record_payment(amount="7000.00")
        ledger.approve_entries([e.id for e in first], TEST_ACTOR_ID)
        session.commit()

        summary = ledger.summary_by_recipient_type()

        builder = summary["builder"]
        assert builder.calculated == Decimal("4200.00")
        assert builder.approved == Decimal("6000.00")
        assert builder.paid == Decimal("0")
        assert builder.total == Decimal("10200.00")
        assert builder.entry_count == 2
        assert str(summary["institution"].total) == "6800.00"

    def test_empty_ledger(self, ledger):
        assert ledger.summary_by_recipient_type() == {}
