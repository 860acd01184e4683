"""Pure DTOs for the payout batch engine."""
