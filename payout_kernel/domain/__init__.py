"""Pure domain types for the payout kernel: clock, enums and snapshots."""
