"""Incident Ledger API - tamper-evident incident logs for co-parenting families."""

__version__ = "0.1.0"
