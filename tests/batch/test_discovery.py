"""
Tests for payout_batch.services.discovery.

Validates the eligibility rule (pending, unflagged, at least 48 hours
old), the exact window boundary, deterministic ordering, and the status
and pending-detail read views.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from payout_batch.services.discovery import PaymentDiscovery
from payout_kernel.domain.types import PaymentStatus, SubjectType
from tests.helpers import load_payment


@pytest.fixture
def discovery(session):
    return PaymentDiscovery(session, window_hours=48)


class TestEligibility:
    def test_old_pending_payment_is_eligible(self, discovery, make_payment, clock):
        payment = make_payment(age_hours=50)

        found = discovery.find_expired_pending_payments(clock.now())

        assert [s.payment_id for s in found] == [payment.id]

    def test_young_payment_is_not_eligible(self, discovery, make_payment, clock):
        make_payment(age_hours=10)

        assert discovery.find_expired_pending_payments(clock.now()) == []

    def test_exactly_window_age_is_eligible(self, discovery, make_payment, clock):
        payment = make_payment(created_at=clock.now() - timedelta(hours=48))

        found = discovery.find_expired_pending_payments(clock.now())

        assert [s.payment_id for s in found] == [payment.id]

    def test_one_second_short_of_window_is_not_eligible(
        self, discovery, make_payment, clock,
    ):
        make_payment(created_at=clock.now() - timedelta(hours=48) + timedelta(seconds=1))

        assert discovery.find_expired_pending_payments(clock.now()) == []

    def test_flagged_payment_is_excluded(self, discovery, make_payment, clock):
        make_payment(age_hours=100, flagged=True, flag_reason="Disputed milestone")

        assert discovery.find_expired_pending_payments(clock.now()) == []

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.INVOICED, PaymentStatus.RECEIVED, PaymentStatus.OVERDUE],
    )
    def test_non_pending_payment_is_excluded(
        self, discovery, make_payment, clock, status,
    ):
        make_payment(age_hours=100, status=status)

        assert discovery.find_expired_pending_payments(clock.now()) == []

    def test_window_is_measured_against_given_now(self, discovery, make_payment, clock):
        make_payment(age_hours=10)

        later = clock.now() + timedelta(hours=38)

        assert len(discovery.find_expired_pending_payments(later)) == 1

    def test_snapshot_carries_version_and_subject(self, discovery, make_payment, clock):
        make_payment(
            amount="1234.50",
            subject="training",
            category="track_a",
            recipients={"cohort_member": "cohort-7"},
        )

        (snapshot,) = discovery.find_expired_pending_payments(clock.now())

        assert snapshot.version == 1
        assert snapshot.amount == Decimal("1234.50")
        assert snapshot.subject_type == SubjectType.TRAINING
        assert snapshot.subject_category == "track_a"
        assert snapshot.recipients == {"cohort_member": "cohort-7"}
        assert snapshot.created_at.tzinfo is not None


class TestOrdering:
    def test_due_date_first_nulls_last(self, discovery, make_payment, clock):
        no_due = make_payment(age_hours=100)
        late_due = make_payment(age_hours=60, due_date=date(2026, 3, 1))
        early_due = make_payment(age_hours=50, due_date=date(2026, 1, 15))

        found = discovery.find_expired_pending_payments(clock.now())

        assert [s.payment_id for s in found] == [early_due.id, late_due.id, no_due.id]

    def test_created_at_breaks_due_date_ties(self, discovery, make_payment, clock):
        newer = make_payment(age_hours=50)
        older = make_payment(age_hours=70)

        found = discovery.find_expired_pending_payments(clock.now())

        assert [s.payment_id for s in found] == [older.id, newer.id]

    def test_limit_caps_result(self, discovery, make_payment, clock):
        for hours in (49, 50, 51):
            make_payment(age_hours=hours)

        found = discovery.find_expired_pending_payments(clock.now(), limit=2)

        assert len(found) == 2
        assert discovery.count_expired_pending_payments(clock.now()) == 3

    def test_repeated_discovery_is_deterministic(self, discovery, make_payment, clock):
        created = clock.now() - timedelta(hours=60)
        for _ in range(4):
            make_payment(created_at=created)

        first = [s.payment_id for s in discovery.find_expired_pending_payments(clock.now())]
        second = [s.payment_id for s in discovery.find_expired_pending_payments(clock.now())]

        assert first == second
        assert first == sorted(first)


class TestBatchStatus:
    def test_empty_queue(self, discovery, clock):
        status = discovery.get_batch_status(clock.now())

        assert status.total_pending == 0
        assert status.eligible_count == 0
        assert status.total_pending_amount == Decimal("0")
        assert status.oldest_pending_age_hours is None
        assert status.next_eligible_at is None
        assert status.window_hours == 48

    def test_counts_and_amounts(self, discovery, make_payment, clock):
        make_payment(amount="10000.00", age_hours=50)
        make_payment(amount="5000.00", age_hours=10)
        make_payment(amount="7000.00", age_hours=72)
        make_payment(amount="900.00", age_hours=80, flagged=True)
        make_payment(amount="300.00", age_hours=90, status=PaymentStatus.RECEIVED)

        status = discovery.get_batch_status(clock.now())

        assert status.total_pending == 4
        assert status.eligible_count == 2
        assert status.flagged_count == 1
        assert status.total_pending_amount == Decimal("22900.00")
        assert status.eligible_amount == Decimal("17000.00")
        assert status.oldest_pending_age_hours == 80

    def test_next_eligible_at_is_earliest_young_payment(
        self, discovery, make_payment, clock,
    ):
        make_payment(age_hours=10)
        make_payment(age_hours=30)

        status = discovery.get_batch_status(clock.now())

        assert status.next_eligible_at == clock.now() + timedelta(hours=18)

    def test_oldest_age_is_whole_hours(self, discovery, make_payment, clock):
        make_payment(created_at=clock.now() - timedelta(hours=49, minutes=59))

        status = discovery.get_batch_status(clock.now())

        assert status.oldest_pending_age_hours == 49

    def test_status_is_read_only(self, discovery, make_payment, clock, session_factory):
        payment = make_payment(age_hours=50)

        discovery.get_batch_status(clock.now())

        assert load_payment(session_factory, payment.id).status == "pending"


class TestPendingDetails:
    def test_countdown_fields(self, discovery, make_payment, clock):
        young = make_payment(created_at=clock.now() - timedelta(hours=12, minutes=15))
        old = make_payment(age_hours=60)

        views = discovery.get_pending_payments_with_details(clock.now())

        assert [v.payment_id for v in views] == [old.id, young.id]
        old_view, young_view = views
        assert old_view.is_eligible is True
        assert old_view.hours_remaining == 0.0
        assert young_view.is_eligible is False
        assert young_view.hours_pending == 12.2
        assert young_view.hours_remaining == 35.8

    def test_flagged_payment_listed_but_not_eligible(
        self, discovery, make_payment, clock,
    ):
        make_payment(age_hours=60, flagged=True, flag_reason="Awaiting sign-off")

        (view,) = discovery.get_pending_payments_with_details(clock.now())

        assert view.flagged is True
        assert view.flag_reason == "Awaiting sign-off"
        assert view.is_eligible is False
        assert view.subject_type == "software"
