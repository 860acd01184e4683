"""Payment ORM constraints, snapshots and the clock helpers they rely on."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from payout_kernel.domain.clock import DeterministicClock, ensure_utc
from payout_kernel.domain.types import PaymentStatus, SubjectType, as_money
from payout_kernel.models.payment import PaymentModel
from tests.helpers import TEST_ACTOR_ID, load_payment


class TestConstraints:
    def test_payment_without_subject_rejected(self, session, clock):
        session.add(
            PaymentModel(
                amount=Decimal("10.00"),
                created_at=clock.now(),
                created_by_id=TEST_ACTOR_ID,
            )
        )

        with pytest.raises(IntegrityError):
            session.commit()

    def test_non_positive_amount_rejected(self, make_payment):
        with pytest.raises(IntegrityError):
            make_payment(amount="0.00")


class TestSnapshot:
    def test_snapshot_round_trips_columns(self, make_payment, session_factory, clock):
        payment = make_payment(
            amount="2500.50",
            subject="training",
            category="track_a",
            recipients={"cohort_member": "cohort-9"},
            notes="first invoice",
            age_hours=10,
        )

        snapshot = load_payment(session_factory, payment.id).to_snapshot()

        assert snapshot.payment_id == payment.id
        assert snapshot.amount == Decimal("2500.50")
        assert str(snapshot.amount) == "2500.50"
        assert snapshot.status == PaymentStatus.PENDING
        assert snapshot.subject_type == SubjectType.TRAINING
        assert snapshot.subject_category == "track_a"
        assert snapshot.created_at == clock.now() - timedelta(hours=10)
        assert snapshot.created_at.tzinfo is not None
        assert snapshot.version == 1
        assert snapshot.recipients == {"cohort_member": "cohort-9"}
        assert snapshot.notes == "first invoice"

    @pytest.mark.parametrize(
        "subject, expected",
        [
            ("software", SubjectType.SOFTWARE),
            ("training", SubjectType.TRAINING),
            ("content", SubjectType.CONTENT),
        ],
    )
    def test_subject_type_from_reference(self, make_payment, subject, expected):
        assert make_payment(subject=subject).subject_type == expected


class TestMoneyAndTime:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("10000.000000000"), "10000.00"),
            (Decimal("0.500000000"), "0.50"),
            (Decimal("1.234500000"), "1.234500000"),
            ("7", "7.00"),
        ],
    )
    def test_as_money(self, value, expected):
        assert str(as_money(value)) == expected

    def test_ensure_utc_treats_naive_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)

        assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_ensure_utc_converts_offsets(self):
        ist = timezone(timedelta(hours=5, minutes=30))

        assert ensure_utc(datetime(2026, 1, 1, 17, 30, tzinfo=ist)).hour == 12

    def test_deterministic_clock(self):
        clock = DeterministicClock()

        assert clock.now() == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert clock.now() == clock.now()
        assert clock.advance(1) == datetime(2026, 1, 1, 12, 0, 1, tzinfo=UTC)
        assert clock.advance(timedelta(hours=1)) == datetime(2026, 1, 1, 13, 0, 1, tzinfo=UTC)
        clock.set_time(datetime(2026, 3, 1, 5, 30))
        assert clock.now() == datetime(2026, 3, 1, 5, 30, tzinfo=UTC)
