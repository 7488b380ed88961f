"""Audited execution and alerting for remote AWS service calls."""

__version__ = "0.1.0"
