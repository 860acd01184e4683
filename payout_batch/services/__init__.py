"""Batch engine services."""
