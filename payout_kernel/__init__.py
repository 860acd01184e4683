"""
Payout Kernel

Persistence and domain core for the Solutions Hub payout workflow:
- Payments with optimistic concurrency
- Append-only earnings ledger
- Injectable clock
- Structured JSON logging and typed errors
"""

__version__ = "0.1.0"
