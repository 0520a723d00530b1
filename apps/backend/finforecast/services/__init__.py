"""
Services package

Forecasting and recurrence services operating on in-memory inputs.
"""

from .recurrence_service import RecurrenceExpander, RecurrenceMaterializer, next_occurrence
from .pattern_service import HistoryWindow, PatternAnalyzer
from .forecast_service import ForecastComposer
from .insight_service import CashflowSummarizer
from .random_source import NeutralRandomSource, RandomSource, build_random_source

__all__ = [
    "RecurrenceExpander",
    "RecurrenceMaterializer",
    "next_occurrence",
    "HistoryWindow",
    "PatternAnalyzer",
    "ForecastComposer",
    "CashflowSummarizer",
    "NeutralRandomSource",
    "RandomSource",
    "build_random_source",
]
