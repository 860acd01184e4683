"""
Typed exception hierarchy for the payout system.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
carrying the data a reconciler needs.

Hierarchy:

    PayoutError (base)
    |
    +-- ConfigurationError
    |   +-- InvalidConfigurationError
    |
    +-- ConcurrencyConflictError
    |
    +-- PersistenceError
    |
    +-- TriggerError
    |   +-- AuthenticationError
    |   +-- LockContentionError
    |
    +-- PaymentError
    |   +-- PaymentNotFoundError
    |   +-- PaymentNotPendingError
    |
    +-- LedgerError
        +-- InvalidEarningsTransitionError
        +-- ImmutabilityViolationError

Propagation policy:

    ConfigurationError, PersistenceError  -> payment FAILED, batch continues
    ConcurrencyConflictError              -> payment SKIPPED, batch continues
    AuthenticationError, LockContentionError -> invocation rejected before
                                             any discovery
"""

from __future__ import annotations


class PayoutError(Exception):
    """
    Base exception for all payout errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "PAYOUT_ERROR"


# Configuration


class ConfigurationError(PayoutError):
    """No revenue-split bucket matches a payment subject, or config is unusable."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, subject_type: str | None = None,
                 category: str | None = None):
        self.subject_type = subject_type
        self.category = category
        super().__init__(message)


class InvalidConfigurationError(ConfigurationError):
    """Configuration failed validation and must not be used."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = tuple(errors)
        super().__init__(
            "Invalid payout configuration: " + "; ".join(self.errors)
        )


# Concurrency


class ConcurrencyConflictError(PayoutError):
    """A conditional update matched no row: the record changed underneath us."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        detail = f" (expected {expected})" if expected else ""
        super().__init__(
            f"Conditional update on {entity_type} {entity_id} matched no row"
            f"{detail}: it was changed by another process"
        )


# Persistence


class PersistenceError(PayoutError):
    """A backend write failed (network, timeout, constraint violation)."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, stage: str, entity_id: str, cause: str):
        self.stage = stage
        self.entity_id = entity_id
        self.cause = cause
        super().__init__(f"Persistence failed during {stage} for {entity_id}: {cause}")


# Trigger / invocation level


class TriggerError(PayoutError):
    """Base exception for invocation-level rejections."""

    code: str = "TRIGGER_ERROR"


class AuthenticationError(TriggerError):
    """Missing or invalid trigger credential."""

    code: str = "AUTHENTICATION_FAILED"

    def __init__(self, reason: str = "Missing or invalid credential"):
        self.reason = reason
        super().__init__(reason)


class LockContentionError(TriggerError):
    """Another batch run holds the run lock."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, lock_name: str, holder: str | None = None):
        self.lock_name = lock_name
        self.holder = holder
        held_by = f" by {holder}" if holder else ""
        super().__init__(f"Batch lock '{lock_name}' is already held{held_by}")


# Payments


class PaymentError(PayoutError):
    """Base exception for payment lookups and manual actions."""

    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class PaymentNotPendingError(PaymentError):
    """Manual action requires a pending payment."""

    code: str = "PAYMENT_NOT_PENDING"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} is not in pending status (status={status})"
        )


# Earnings ledger


class LedgerError(PayoutError):
    """Base exception for earnings ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidEarningsTransitionError(LedgerError):
    """Earnings entries only move calculated -> approved -> paid."""

    code: str = "INVALID_EARNINGS_TRANSITION"

    def __init__(self, entry_id: str, from_status: str, to_status: str):
        self.entry_id = entry_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Earnings entry {entry_id} cannot move from {from_status} to {to_status}"
        )


class ImmutabilityViolationError(LedgerError):
    """Attempted modification of an immutable financial record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
