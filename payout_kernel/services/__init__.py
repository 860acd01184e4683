"""Kernel services: imperative shell over the payout models."""
