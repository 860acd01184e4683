"""
Module: payout_engines
Responsibility:
    Pure calculation engines for the payout system.

Architecture position:
    Engines -- zero I/O.  May import payout_kernel/domain only.
    Timestamps and configuration are passed in by the caller.
"""

from payout_engines.revenue_split import (
    RevenueSplitCalculator,
    SplitLine,
    SplitResult,
    compute_split,
)

__all__ = [
    "RevenueSplitCalculator",
    "SplitLine",
    "SplitResult",
    "compute_split",
]
