"""
PayoutConfiguration schema.

The human-authored source artifact for payout configuration.  YAML
fragments are parsed into these frozen types by the loader and checked
by the validator; the resulting ``PayoutConfiguration`` is the single
immutable object injected into the batch engine at call time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from payout_kernel.exceptions import ConfigurationError

WILDCARD_CATEGORY = "*"

# ---------------------------------------------------------------------------
# Revenue split
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecipientShare:
    """One recipient type's fraction of an approved payment."""

    recipient_type: str
    share: Decimal
    recipient_name: str | None = None


@dataclass(frozen=True)
class RevenueSplitBucket:
    """Recipient shares for one (subject type, category) pair.

    ``category`` is ``"*"`` for the per-subject-type fallback bucket.
    """

    subject_type: str
    category: str
    recipients: tuple[RecipientShare, ...]

    @property
    def key(self) -> tuple[str, str]:
        return (self.subject_type, self.category)

    @property
    def total_share(self) -> Decimal:
        return sum((r.share for r in self.recipients), Decimal("0"))


@dataclass(frozen=True)
class RevenueSplitConfiguration:
    """All revenue split buckets plus the currency precision."""

    buckets: tuple[RevenueSplitBucket, ...]
    currency_places: int = 2

    def resolve(self, subject_type: str, category: str | None) -> RevenueSplitBucket:
        """Return the bucket for a payment subject.

        An exact category match wins; otherwise the subject type's
        wildcard bucket is used.

        Raises:
            ConfigurationError: no bucket covers the subject.
        """
        wildcard: RevenueSplitBucket | None = None
        for bucket in self.buckets:
            if bucket.subject_type != subject_type:
                continue
            if category is not None and bucket.category == category:
                return bucket
            if bucket.category == WILDCARD_CATEGORY and wildcard is None:
                wildcard = bucket
        if wildcard is not None:
            return wildcard
        raise ConfigurationError(
            f"No revenue split configured for subject type {subject_type!r}"
            f" and category {category!r}",
            subject_type=subject_type,
            category=category,
        )

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.currency_places)


# ---------------------------------------------------------------------------
# Batch policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchPolicy:
    """Operational limits of one batch invocation."""

    actor_id: UUID
    pending_window_hours: int = 48
    max_batch_size: int = 200
    time_budget_seconds: float = 55.0
    lock_name: str = "payout_batch"
    lock_ttl_seconds: int = 900
    approved_status: str = "received"
    schedule_interval_seconds: int = 3600


# ---------------------------------------------------------------------------
# Top-level configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutConfiguration:
    """Validated, immutable payout configuration.

    Attributes:
        config_id: Identifier of the configuration set (e.g. "payout-default").
        version: Configuration version number.
        checksum: SHA-256 of the canonical serialization of the source YAML.
        revenue_splits: Split buckets by subject.
        batch: Batch engine limits.
    """

    config_id: str
    version: int
    revenue_splits: RevenueSplitConfiguration
    batch: BatchPolicy
    checksum: str = ""
    description: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
