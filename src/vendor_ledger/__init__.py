"""Vendor Ledger - reconciliation and normalization engine for vendor billing data."""

__version__ = "0.1.0"
