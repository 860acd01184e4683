"""
ORM-level immutability enforcement for payout records.

Payments and earnings entries are financial records: once a payment has
been approved, the money it describes is fixed, and an earnings entry
only ever moves forward through calculated -> approved -> paid.

SQLAlchemy fires mapper events before UPDATE/DELETE reaches the database:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

    Entity          | Rule
    ----------------|------------------------------------------------------
    Payment         | Never deleted.  amount and subject refs frozen once
                    | the payment has left ``pending``.
    EarningsEntry   | Never deleted.  Only status (forward), approved_at,
                    | paid_at, notes and audit fields may change.

The batch disposition engine transitions payments with a Core conditional
UPDATE, which does not fire mapper events; its WHERE clause carries the
``pending`` guard instead.

Usage:

    from payout_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to violate the rules call unregister_immutability_listeners().
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payout_kernel.domain.types import (
    EARNINGS_TRANSITIONS,
    EarningsStatus,
    PaymentStatus,
)
from payout_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidEarningsTransitionError,
)
from payout_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

PAYMENT_FROZEN_AFTER_APPROVAL = frozenset({
    "amount",
    "phase_id",
    "program_id",
    "order_id",
})

EARNINGS_ENTRY_MUTABLE_FIELDS = frozenset({
    "status",
    "approved_at",
    "paid_at",
    "notes",
    "updated_at",
    "updated_by_id",
})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_payment_immutability(mapper, connection, target):
    """Freeze the money fields of a payment that is no longer pending."""
    status_history = get_history(target, "status")
    if status_history.deleted:
        previous_status = status_history.deleted[0]
    else:
        previous_status = target.status

    if previous_status == PaymentStatus.PENDING.value:
        return

    for field in PAYMENT_FROZEN_AFTER_APPROVAL:
        if get_history(target, field).has_changes():
            _blocked(
                "Payment",
                target.id,
                "UPDATE",
                f"Cannot modify field '{field}' on a {previous_status} payment",
                field=field,
            )


def _check_payment_delete(mapper, connection, target):
    _blocked("Payment", target.id, "DELETE", "Payments cannot be deleted")


def _check_earnings_entry_immutability(mapper, connection, target):
    """
    Allow only forward status movement and lifecycle timestamps.
    """
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in EARNINGS_ENTRY_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            _blocked(
                "EarningsEntry",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an earnings entry",
                field=attr.key,
            )

    status_history = get_history(target, "status")
    if not status_history.deleted or not status_history.added:
        return

    old_status = EarningsStatus(status_history.deleted[0])
    new_status = EarningsStatus(status_history.added[0])
    if old_status == new_status:
        return
    if EARNINGS_TRANSITIONS.get(old_status) != new_status:
        logger.error(
            "earnings_transition_blocked",
            extra={
                "entity_id": str(target.id),
                "from_status": old_status.value,
                "to_status": new_status.value,
            },
        )
        raise InvalidEarningsTransitionError(
            entry_id=str(target.id),
            from_status=old_status.value,
            to_status=new_status.value,
        )


def _check_earnings_entry_delete(mapper, connection, target):
    _blocked(
        "EarningsEntry", target.id, "DELETE", "Earnings entries cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    from payout_kernel.models.earnings import EarningsEntryModel
    from payout_kernel.models.payment import PaymentModel

    for target, event_name, fn in _listeners(PaymentModel, EarningsEntryModel):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _listeners(payment_model, earnings_model):
    return (
        (payment_model, "before_update", _check_payment_immutability),
        (payment_model, "before_delete", _check_payment_delete),
        (earnings_model, "before_update", _check_earnings_entry_immutability),
        (earnings_model, "before_delete", _check_earnings_entry_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from payout_kernel.models.earnings import EarningsEntryModel
    from payout_kernel.models.payment import PaymentModel

    for target, event_name, fn in _listeners(PaymentModel, EarningsEntryModel):
        _safe_remove_listener(target, event_name, fn)
