"""
Utility helpers
"""

from .dates import add_months, clamp_day, month_bounds, month_key, month_label

__all__ = [
    "add_months",
    "clamp_day",
    "month_bounds",
    "month_key",
    "month_label",
]
