from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from finforecast.core.config import settings
from finforecast.core.deps import get_composer, get_ledger, get_summarizer
from finforecast.core.errors import ForecastValidationError
from finforecast.core.ledger import InMemoryLedger
from finforecast.schemas import CashflowPredictionOut, Envelope, ForecastOut
from finforecast.services.forecast_service import ForecastComposer
from finforecast.services.insight_service import CashflowSummarizer


router = APIRouter(prefix="/forecast", tags=["forecast"])


@router.get("/expenses", response_model=Envelope[ForecastOut])
def get_expense_forecast(
    user_id: int = Query(..., gt=0),
    months: int = Query(settings.DEFAULT_FORECAST_MONTHS),
    include_savings: bool = Query(True, alias="includeSavings"),
    include_income: bool = Query(True, alias="includeIncome"),
    today: date | None = Query(None, description="Reference date, defaults to the current day"),
    ledger: InMemoryLedger = Depends(get_ledger),
    composer: ForecastComposer = Depends(get_composer),
):
    snapshot = ledger.snapshot(user_id)
    try:
        forecast = composer.compose(
            snapshot.rules,
            snapshot.transactions,
            snapshot.categories,
            snapshot.budget_templates,
            months,
            include_income=include_income,
            include_savings=include_savings,
            today=today,
        )
    except ForecastValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return Envelope[ForecastOut](data=forecast)


@router.get("/cashflow", response_model=Envelope[CashflowPredictionOut])
def get_cashflow_prediction(
    user_id: int = Query(..., gt=0),
    today: date | None = Query(None, description="Reference date, defaults to the current day"),
    ledger: InMemoryLedger = Depends(get_ledger),
    composer: ForecastComposer = Depends(get_composer),
    summarizer: CashflowSummarizer = Depends(get_summarizer),
):
    snapshot = ledger.snapshot(user_id)
    try:
        forecast = composer.compose(
            snapshot.rules,
            snapshot.transactions,
            snapshot.categories,
            snapshot.budget_templates,
            settings.CASHFLOW_MONTHS,
            include_income=True,
            include_savings=True,
            today=today,
        )
    except ForecastValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return Envelope[CashflowPredictionOut](data=summarizer.summarize(forecast))
