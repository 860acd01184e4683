"""ORM models for batch run persistence."""

from payout_batch.models.batch import (
    BatchRunItemModel,
    BatchRunLockModel,
    BatchRunModel,
)

__all__ = [
    "BatchRunItemModel",
    "BatchRunLockModel",
    "BatchRunModel",
]
