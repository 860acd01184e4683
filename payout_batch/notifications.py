"""
Payment outcome notifications.

The processor calls ``notify()`` after the per-payment commit for
approved and failed payments.  Delivery (email, in-app) lives outside
this package; ``LoggingNotifier`` is the default.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from payout_batch.domain.types import Disposition
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.notifications")


@runtime_checkable
class PaymentNotifier(Protocol):
    """Receives one call per approved or failed payment.

    Implementations must not raise for delivery problems; the processor
    logs and ignores notifier exceptions so a broken channel never
    changes a committed outcome.
    """

    def notify(self, payment_id: UUID, outcome: Disposition, reason: str) -> None: ...


class LoggingNotifier:
    def notify(self, payment_id: UUID, outcome: Disposition, reason: str) -> None:
        logger.info(
            "payment_notification",
            extra={
                "payment_id": str(payment_id),
                "outcome": outcome.value,
                "reason": reason,
            },
        )
