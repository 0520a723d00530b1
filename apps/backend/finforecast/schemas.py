from __future__ import annotations

import datetime as dt
from datetime import date
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import CategoryType, ForecastSource, PatternFrequency, TxnType


T = TypeVar("T")


class OutModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryRef(OutModel):
    id: str
    name: str
    type: CategoryType


class CategoryPattern(OutModel):
    category_id: str
    type: TxnType
    total_amount: float = 0.0
    transaction_count: int = 0
    months_observed: int = 0
    average_amount: float = 0.0
    average_monthly: float = 0.0
    monthly_totals: dict[str, float] = Field(default_factory=dict)
    regularity: float = 0.0
    frequency: PatternFrequency = PatternFrequency.VARIABLE
    offset: int = 0
    confidence: float = 0.5
    is_mainly_recurring: bool = False


class ForecastItemOut(OutModel):
    description: str
    amount: float
    date: dt.date
    category: Optional[CategoryRef] = None
    type: TxnType
    confidence: float
    source: ForecastSource
    rule_id: Optional[str] = None


class MonthlySummaryOut(OutModel):
    total_expenses: float = 0.0
    total_income: float = 0.0
    net_cashflow: float = 0.0
    savings_rate: float = 0.0


class MonthlyForecastOut(OutModel):
    month: str
    month_name: str
    expenses: list[ForecastItemOut] = Field(default_factory=list)
    income: list[ForecastItemOut] = Field(default_factory=list)
    summary: MonthlySummaryOut = Field(default_factory=MonthlySummaryOut)


class ForecastSummaryOut(OutModel):
    total_months: int = 0
    average_monthly_expenses: float = 0.0
    average_monthly_income: float = 0.0
    average_net_cashflow: float = 0.0
    average_savings_rate: float = 0.0


class ForecastOut(OutModel):
    forecast: list[MonthlyForecastOut]
    summary: ForecastSummaryOut


class CashflowRowOut(OutModel):
    month: str
    income: float
    expenses: float
    net: float
    savings_rate: float


class TopCategoryOut(OutModel):
    name: str
    amount: float


class InsightOut(OutModel):
    id: str
    type: Literal["positive", "negative", "warning", "info"]
    title: str
    description: str


class CashflowSummaryOut(OutModel):
    total_income: float
    total_expenses: float
    net_cashflow: float
    savings_rate: float


class CashflowPredictionOut(OutModel):
    cashflow: list[CashflowRowOut]
    top_categories: list[TopCategoryOut]
    insights: list[InsightOut]
    summary: CashflowSummaryOut


class OccurrencePreviewOut(OutModel):
    rule_id: str
    items: list[date]
    total_count: int
    page: int
    page_size: int


class GenerateRequest(OutModel):
    user_id: int = Field(..., gt=0)
    until: Optional[date] = None
    recurring_rule_id: Optional[str] = None


class GenerateDetailOut(OutModel):
    recurring_id: str
    description: str
    status: Literal["generated", "skipped"]
    dates: list[date] = Field(default_factory=list)
    reason: Optional[str] = None


class GenerateResultOut(OutModel):
    success: bool = True
    generated: int
    skipped: int
    details: list[GenerateDetailOut]


class Envelope(OutModel, Generic[T]):
    success: bool = True
    data: T
