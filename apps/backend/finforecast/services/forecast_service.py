"""
Forecast composition

For each forecast month, merges three signals into one projection:

1. recurring rule occurrences
2. statistical predictions for categories not already explained by rules
3. budget template amounts for categories with no history at all
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable

from finforecast.core.config import ForecastTuning, settings
from finforecast.core.errors import ForecastValidationError
from finforecast.models import (
    UNCATEGORIZED_KEY,
    BudgetTemplateEntry,
    Category,
    CategoryType,
    ForecastSource,
    PatternFrequency,
    RecurringRule,
    TransactionRecord,
    TxnType,
)
from finforecast.schemas import (
    CategoryPattern,
    CategoryRef,
    ForecastItemOut,
    ForecastOut,
    ForecastSummaryOut,
    MonthlyForecastOut,
    MonthlySummaryOut,
)
from finforecast.services.pattern_service import HistoryWindow, PatternAnalyzer
from finforecast.services.random_source import RandomSource, build_random_source
from finforecast.services.recurrence_service import RecurrenceExpander
from finforecast.utils.dates import add_months, month_bounds, month_key, month_label


logger = logging.getLogger(__name__)


def _category_ref(category: Category | None) -> CategoryRef | None:
    if category is None:
        return None
    return CategoryRef(id=category.id, name=category.name, type=category.type)


def _savings_rate(income: float, net: float) -> float:
    return (net / income) * 100 if income > 0 else 0.0


class ForecastComposer:
    def __init__(
        self,
        *,
        expander: RecurrenceExpander | None = None,
        analyzer: PatternAnalyzer | None = None,
        random_source: RandomSource | None = None,
        tuning: ForecastTuning | None = None,
        max_months: int | None = None,
        history_months: int | None = None,
    ) -> None:
        self.tuning = tuning or settings.TUNING
        self.expander = expander or RecurrenceExpander()
        self.analyzer = analyzer or PatternAnalyzer(self.tuning)
        self.random = random_source or build_random_source()
        self.max_months = max_months if max_months is not None else settings.MAX_FORECAST_MONTHS
        self.history_months = history_months if history_months is not None else settings.HISTORY_MONTHS

    def compose(
        self,
        rules: Iterable[RecurringRule],
        transactions: Iterable[TransactionRecord],
        categories: Iterable[Category],
        budget_templates: Iterable[BudgetTemplateEntry],
        months: int,
        include_income: bool = True,
        include_savings: bool = True,
        *,
        today: date | None = None,
    ) -> ForecastOut:
        if months < 0:
            raise ForecastValidationError("months must not be negative", field="months")
        if months > self.max_months:
            raise ForecastValidationError(f"months must not exceed {self.max_months}", field="months")

        today = today or date.today()
        rules = [r for r in rules if r.is_active]
        categories = list(categories)
        category_map = {c.id: c for c in categories}
        templates = list(budget_templates)

        patterns = self.analyzer.analyze(
            transactions, categories, HistoryWindow.trailing(today, self.history_months)
        )

        forecast: list[MonthlyForecastOut] = []
        for i in range(months):
            month_start, month_end = month_bounds(add_months(today, i, day=1))
            monthly = MonthlyForecastOut(month=month_key(month_start), month_name=month_label(month_start))

            self._add_recurring(monthly, rules, category_map, month_start, month_end, include_income)
            self._add_predictions(monthly, i, patterns, category_map, month_start, include_income, include_savings)
            self._add_budget_fallback(monthly, templates, patterns, category_map, month_start, include_savings)
            self._finalize(monthly)
            forecast.append(monthly)

        summary = self._summarize(forecast)
        logger.info(
            "Composed %d-month forecast from %d rules, %d patterns, %d budget entries",
            months,
            len(rules),
            sum(1 for p in patterns.values() if p.transaction_count),
            len(templates),
        )
        return ForecastOut(forecast=forecast, summary=summary)

    def _add_recurring(
        self,
        monthly: MonthlyForecastOut,
        rules: list[RecurringRule],
        category_map: dict[str, Category],
        month_start: date,
        month_end: date,
        include_income: bool,
    ) -> None:
        for rule in rules:
            if rule.type == TxnType.INCOME and not include_income:
                continue
            target = monthly.expenses if rule.type == TxnType.EXPENSE else monthly.income
            for occurred_at in self.expander.expand_occurrences(rule, month_start, month_end):
                target.append(
                    ForecastItemOut(
                        description=rule.description,
                        amount=rule.amount,
                        date=occurred_at,
                        category=_category_ref(category_map.get(rule.category_id)) if rule.category_id else None,
                        type=rule.type,
                        confidence=self.tuning.recurring_confidence,
                        source=ForecastSource.RECURRING,
                        rule_id=rule.id,
                    )
                )

    def predicted_amount(self, pattern: CategoryPattern, month_index: int) -> float:
        """Amount a pattern contributes to the ``month_index``-th forecast month."""
        if pattern.frequency == PatternFrequency.MONTHLY:
            return pattern.average_monthly
        if pattern.frequency in (PatternFrequency.BIMONTHLY, PatternFrequency.QUARTERLY):
            period = pattern.frequency.period
            if month_index % period == pattern.offset % period:
                return pattern.average_amount
            return 0.0
        spread = self.tuning.variable_perturbation
        return pattern.average_monthly * (1 + self.random.uniform(-spread, spread))

    def _add_predictions(
        self,
        monthly: MonthlyForecastOut,
        month_index: int,
        patterns: dict[str, CategoryPattern],
        category_map: dict[str, Category],
        month_start: date,
        include_income: bool,
        include_savings: bool,
    ) -> None:
        for category_id, pattern in patterns.items():
            if pattern.transaction_count == 0:
                continue
            # Categories explained by recurring rules are already in the recurring pass
            if pattern.is_mainly_recurring:
                continue
            category = category_map.get(category_id)
            if not include_savings and category is not None and category.type == CategoryType.SAVINGS:
                continue
            if not include_income and pattern.type == TxnType.INCOME:
                continue

            amount = self.predicted_amount(pattern, month_index)
            if amount <= 0:
                continue

            day_offset = self.random.randint(0, self.tuning.prediction_max_day_offset)
            item = ForecastItemOut(
                description=f"Predicted {category.name if category else 'Uncategorized'}",
                amount=amount,
                date=month_start + timedelta(days=day_offset),
                category=_category_ref(category),
                type=pattern.type,
                confidence=pattern.confidence,
                source=ForecastSource.PREDICTION,
            )
            if pattern.type == TxnType.EXPENSE:
                monthly.expenses.append(item)
            else:
                monthly.income.append(item)

    def _add_budget_fallback(
        self,
        monthly: MonthlyForecastOut,
        templates: list[BudgetTemplateEntry],
        patterns: dict[str, CategoryPattern],
        category_map: dict[str, Category],
        month_start: date,
        include_savings: bool,
    ) -> None:
        for entry in templates:
            key = entry.category_id if entry.category_id is not None else UNCATEGORIZED_KEY
            pattern = patterns.get(key)
            if pattern is not None and (pattern.transaction_count > 0 or pattern.is_mainly_recurring):
                continue
            category = category_map.get(entry.category_id) if entry.category_id else None
            if not include_savings and category is not None and category.type == CategoryType.SAVINGS:
                continue
            if entry.amount <= 0:
                continue

            monthly.expenses.append(
                ForecastItemOut(
                    description=f"Budgeted {category.name if category else 'Uncategorized'}",
                    amount=entry.amount,
                    date=month_start + timedelta(days=self.tuning.budget_day_offset),
                    category=_category_ref(category),
                    type=TxnType.EXPENSE,
                    confidence=self.tuning.budget_confidence,
                    source=ForecastSource.BUDGET,
                )
            )

    @staticmethod
    def _finalize(monthly: MonthlyForecastOut) -> None:
        monthly.expenses.sort(key=lambda item: item.date)
        monthly.income.sort(key=lambda item: item.date)
        total_expenses = sum(item.amount for item in monthly.expenses)
        total_income = sum(item.amount for item in monthly.income)
        net = total_income - total_expenses
        monthly.summary = MonthlySummaryOut(
            total_expenses=total_expenses,
            total_income=total_income,
            net_cashflow=net,
            savings_rate=_savings_rate(total_income, net),
        )

    @staticmethod
    def _summarize(forecast: list[MonthlyForecastOut]) -> ForecastSummaryOut:
        count = len(forecast)
        if count == 0:
            return ForecastSummaryOut()
        return ForecastSummaryOut(
            total_months=count,
            average_monthly_expenses=sum(m.summary.total_expenses for m in forecast) / count,
            average_monthly_income=sum(m.summary.total_income for m in forecast) / count,
            average_net_cashflow=sum(m.summary.net_cashflow for m in forecast) / count,
            average_savings_rate=sum(m.summary.savings_rate for m in forecast) / count,
        )
