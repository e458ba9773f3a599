"""Reconciliation engine for externally hosted cloud resources."""

__version__ = "0.1.0"
