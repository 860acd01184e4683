"""
Configuration Validator (``payout_config.validator``).

Responsibility
--------------
Validates a parsed ``PayoutConfiguration`` before it is handed to the
batch engine.  A configuration with errors refuses to load.

Invariants enforced
-------------------
* Every bucket's shares are positive and sum to exactly 1.
* Subject and recipient types are known values.
* (subject_type, category) pairs are unique, and a recipient type appears
  at most once per bucket.
* Batch limits are positive; the approval status is ``invoiced`` or
  ``received``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from payout_config.schema import PayoutConfiguration, RevenueSplitBucket
from payout_kernel.domain.types import APPROVAL_STATUSES, RecipientType, SubjectType

_SUBJECT_TYPES = frozenset(s.value for s in SubjectType)
_RECIPIENT_TYPES = frozenset(r.value for r in RecipientType)
_APPROVAL_STATUSES = frozenset(s.value for s in APPROVAL_STATUSES)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: PayoutConfiguration) -> ConfigValidationResult:
    result = ConfigValidationResult()

    _validate_bucket_uniqueness(config, result)
    for bucket in config.revenue_splits.buckets:
        _validate_bucket(bucket, result)
    _validate_subject_coverage(config, result)
    _validate_batch_policy(config, result)

    if config.revenue_splits.currency_places < 0:
        result.add_error(
            f"currency_places must be >= 0, got {config.revenue_splits.currency_places}"
        )

    return result


def _validate_bucket_uniqueness(
    config: PayoutConfiguration, result: ConfigValidationResult
) -> None:
    seen: set[tuple[str, str]] = set()
    for bucket in config.revenue_splits.buckets:
        if bucket.key in seen:
            result.add_error(
                f"Duplicate revenue split bucket {bucket.subject_type}/{bucket.category}"
            )
        seen.add(bucket.key)


def _validate_bucket(bucket: RevenueSplitBucket, result: ConfigValidationResult) -> None:
    label = f"{bucket.subject_type}/{bucket.category}"

    if bucket.subject_type not in _SUBJECT_TYPES:
        result.add_error(f"Bucket {label}: unknown subject type {bucket.subject_type!r}")

    if not bucket.recipients:
        result.add_error(f"Bucket {label}: no recipients")
        return

    recipient_types: set[str] = set()
    for recipient in bucket.recipients:
        if recipient.recipient_type not in _RECIPIENT_TYPES:
            result.add_error(
                f"Bucket {label}: unknown recipient type {recipient.recipient_type!r}"
            )
        if recipient.recipient_type in recipient_types:
            result.add_error(
                f"Bucket {label}: recipient type {recipient.recipient_type!r} listed twice"
            )
        recipient_types.add(recipient.recipient_type)
        if recipient.share <= 0:
            result.add_error(
                f"Bucket {label}: share for {recipient.recipient_type!r} must be positive"
            )

    if bucket.total_share != Decimal("1"):
        result.add_error(
            f"Bucket {label}: shares sum to {bucket.total_share}, expected exactly 1"
        )


def _validate_subject_coverage(
    config: PayoutConfiguration, result: ConfigValidationResult
) -> None:
    """Warn (not fail) for subject types without a wildcard bucket."""
    wildcards = {
        b.subject_type for b in config.revenue_splits.buckets if b.category == "*"
    }
    for subject_type in sorted(_SUBJECT_TYPES - wildcards):
        result.add_warning(
            f"Subject type {subject_type!r} has no wildcard bucket; payments with"
            " an unlisted category will fail with CONFIGURATION_ERROR"
        )


def _validate_batch_policy(
    config: PayoutConfiguration, result: ConfigValidationResult
) -> None:
    policy = config.batch
    if policy.pending_window_hours <= 0:
        result.add_error("batch.pending_window_hours must be positive")
    if policy.max_batch_size <= 0:
        result.add_error("batch.max_batch_size must be positive")
    if policy.time_budget_seconds <= 0:
        result.add_error("batch.time_budget_seconds must be positive")
    if policy.lock_ttl_seconds <= 0:
        result.add_error("batch.lock_ttl_seconds must be positive")
    if policy.schedule_interval_seconds <= 0:
        result.add_error("batch.schedule_interval_seconds must be positive")
    if not policy.lock_name:
        result.add_error("batch.lock_name must not be empty")
    if policy.approved_status not in _APPROVAL_STATUSES:
        result.add_error(
            f"batch.approved_status must be one of {sorted(_APPROVAL_STATUSES)},"
            f" got {policy.approved_status!r}"
        )
