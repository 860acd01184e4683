"""ORM models for the payout kernel."""

from payout_kernel.models.earnings import EarningsEntryModel
from payout_kernel.models.payment import PaymentModel

__all__ = [
    "EarningsEntryModel",
    "PaymentModel",
]
