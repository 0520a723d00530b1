from __future__ import annotations

import datetime as dt
import math
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


UNCATEGORIZED_KEY = "uncategorized"


class TxnType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    SAVINGS = "savings"

    @property
    def flow(self) -> TxnType:
        """Cash direction of money booked against a category of this type."""
        if self is CategoryType.INCOME:
            return TxnType.INCOME
        return TxnType.EXPENSE


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def is_week_based(self) -> bool:
        return self in (RecurringFrequency.WEEKLY, RecurringFrequency.BIWEEKLY)


class PatternFrequency(str, Enum):
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    VARIABLE = "variable"

    @property
    def period(self) -> int | None:
        return _PATTERN_PERIODS.get(self)


_PATTERN_PERIODS: dict[PatternFrequency, int] = {
    PatternFrequency.MONTHLY: 1,
    PatternFrequency.BIMONTHLY: 2,
    PatternFrequency.QUARTERLY: 3,
}


class ForecastSource(str, Enum):
    RECURRING = "recurring"
    PREDICTION = "prediction"
    BUDGET = "budget"


class DomainModel(BaseModel):
    """Base for input records: accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _positive_amount(v: float) -> float:
    if not math.isfinite(v):
        raise ValueError("amount must be finite")
    if v <= 0:
        raise ValueError("amount must be positive")
    return v


class Category(DomainModel):
    id: str
    name: str
    type: CategoryType = CategoryType.EXPENSE

    @field_validator("id", mode="before")
    def coerce_id(cls, v):
        return str(v) if v is not None else v


class TransactionRecord(DomainModel):
    id: str
    description: str = ""
    amount: float
    type: TxnType
    date: dt.date
    category_id: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @field_validator("id", "category_id", mode="before")
    def coerce_ids(cls, v):
        return str(v) if v is not None else v

    @field_validator("amount")
    def amount_positive(cls, v: float):
        return _positive_amount(v)


class RecurringRule(DomainModel):
    id: str
    description: str
    amount: float
    type: TxnType
    frequency: RecurringFrequency = RecurringFrequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    category_id: Optional[str] = None
    day_of_week: Optional[int] = None  # 0=Sun .. 6=Sat
    day_of_month: Optional[int] = None  # 1-31, clamped per month
    last_generated_date: Optional[date] = None
    is_active: bool = True

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)

    @field_validator("id", "category_id", mode="before")
    def coerce_ids(cls, v):
        return str(v) if v is not None else v

    @field_validator("amount")
    def amount_positive(cls, v: float):
        return _positive_amount(v)

    @field_validator("day_of_month")
    def validate_day(cls, v: int | None):
        if v is not None and not (1 <= v <= 31):
            raise ValueError("day_of_month must be between 1 and 31")
        return v

    @field_validator("day_of_week")
    def validate_weekday(cls, v: int | None):
        if v is not None and not (0 <= v <= 6):
            raise ValueError("day_of_week must be between 0 and 6")
        return v

    @model_validator(mode="after")
    def validate_schedule(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.last_generated_date is not None and self.last_generated_date < self.start_date:
            raise ValueError("last_generated_date must not be before start_date")
        if self.type == TxnType.EXPENSE and self.category_id is None:
            raise ValueError("category_id is required for expense rules")
        return self

    @property
    def anchor_day(self) -> int:
        """Day of month used by month-based frequencies."""
        return self.day_of_month or self.start_date.day


class BudgetTemplateEntry(DomainModel):
    category_id: Optional[str] = None
    amount: float = Field(ge=0)

    @field_validator("category_id", mode="before")
    def coerce_category(cls, v):
        return str(v) if v is not None else v

    @field_validator("amount")
    def amount_finite(cls, v: float):
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        return v
