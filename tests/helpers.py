"""Shared builders and readers for payout tests."""

from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from payout_config.schema import (
    BatchPolicy,
    PayoutConfiguration,
    RecipientShare,
    RevenueSplitBucket,
    RevenueSplitConfiguration,
)
from payout_kernel.models.earnings import EarningsEntryModel
from payout_kernel.models.payment import PaymentModel

# Staff actor for review operations
TEST_ACTOR_ID = UUID("5f1d0c1e-7a52-4c1b-9d0e-3a6b2f4c8e10")

# Actor recorded on rows the batch engine writes
BATCH_ACTOR_ID = UUID("00000000-0000-4000-8000-00000000b47c")


def make_config(
    buckets: tuple[RevenueSplitBucket, ...] | None = None,
    **policy_overrides,
) -> PayoutConfiguration:
    """Two-recipient 60/40 split for software plus a training track_a bucket.

    Content has no bucket, and training has no wildcard.
    """
    if buckets is None:
        buckets = (
            RevenueSplitBucket(
                subject_type="software",
                category="*",
                recipients=(
                    RecipientShare("builder", Decimal("0.60"), "Builder"),
                    RecipientShare("institution", Decimal("0.40"), "Institution"),
                ),
            ),
            RevenueSplitBucket(
                subject_type="training",
                category="track_a",
                recipients=(
                    RecipientShare("cohort_member", Decimal("0.60")),
                    RecipientShare("council", Decimal("0.20")),
                    RecipientShare("infrastructure", Decimal("0.20")),
                ),
            ),
        )
    policy = replace(BatchPolicy(actor_id=BATCH_ACTOR_ID), **policy_overrides)
    return PayoutConfiguration(
        config_id="payout-test",
        version=1,
        revenue_splits=RevenueSplitConfiguration(buckets=buckets),
        batch=policy,
        checksum="test-checksum",
    )


def load_payment(session_factory, payment_id: UUID) -> PaymentModel:
    with session_factory() as s:
        return s.get(PaymentModel, payment_id)


def load_entries(session_factory, payment_id: UUID) -> list[EarningsEntryModel]:
    with session_factory() as s:
        return list(
            s.scalars(
                select(EarningsEntryModel)
                .where(EarningsEntryModel.payment_id == payment_id)
                .order_by(EarningsEntryModel.recipient_type)
            )
        )
