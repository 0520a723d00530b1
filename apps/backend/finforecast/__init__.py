"""Recurring-rule expansion and cash-flow forecasting engine."""

__version__ = "0.1.0"
