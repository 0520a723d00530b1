from __future__ import annotations

from functools import lru_cache

from finforecast.core.ledger import InMemoryLedger, ledger
from finforecast.services.forecast_service import ForecastComposer
from finforecast.services.insight_service import CashflowSummarizer
from finforecast.services.recurrence_service import RecurrenceExpander, RecurrenceMaterializer


def get_ledger() -> InMemoryLedger:
    """Source of forecast inputs. Tests override this dependency with their own ledger."""
    return ledger


def get_composer() -> ForecastComposer:
    # A fresh composer per request so each forecast draws from its own random source
    return ForecastComposer()


def get_summarizer() -> CashflowSummarizer:
    return CashflowSummarizer()


def get_expander() -> RecurrenceExpander:
    return RecurrenceExpander()


@lru_cache
def get_materializer() -> RecurrenceMaterializer:
    # Shared instance: its per-rule locks must outlive a single request
    return RecurrenceMaterializer()
