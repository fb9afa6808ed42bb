"""RCTI generation, amount calculation and deduction ledger engine."""

__version__ = "1.0.0"
