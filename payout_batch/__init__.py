"""
payout_batch -- the 48-hour auto-approval batch engine.

Discovery finds expired pending payments, the disposition engine
approves each one atomically with its revenue split, and the processor
runs them in one guarded, budgeted pass.  ``PayoutOrchestrator`` wires
it all together.
"""
