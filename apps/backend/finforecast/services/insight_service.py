from __future__ import annotations

import logging
from collections import defaultdict

from finforecast.core.config import ForecastTuning, settings
from finforecast.schemas import (
    CashflowPredictionOut,
    CashflowRowOut,
    CashflowSummaryOut,
    ForecastOut,
    InsightOut,
    TopCategoryOut,
)


logger = logging.getLogger(__name__)


def _share_text(amount: float, income: float) -> str:
    if income <= 0:
        return "with no projected income to cover it"
    return f"which is {amount / income * 100:.1f}% of your average monthly income"


class CashflowSummarizer:
    """Turn a composed forecast into a cashflow table, top categories and insights."""

    def __init__(self, tuning: ForecastTuning | None = None) -> None:
        self.tuning = tuning or settings.TUNING

    def summarize(self, forecast: ForecastOut) -> CashflowPredictionOut:
        months = forecast.forecast
        total_income = sum(m.summary.total_income for m in months)
        total_expenses = sum(m.summary.total_expenses for m in months)
        net = total_income - total_expenses

        cashflow = [
            CashflowRowOut(
                month=m.month_name,
                income=m.summary.total_income,
                expenses=m.summary.total_expenses,
                net=m.summary.net_cashflow,
                savings_rate=m.summary.savings_rate,
            )
            for m in months
        ]
        top_categories = self.top_categories(forecast)

        insights: list[InsightOut] = [self._headline(net, len(months))]
        insights.extend(self._month_changes(forecast))
        insights.extend(self._concentration(top_categories, forecast))
        if len(insights) < self.tuning.min_insights:
            average_expenses = forecast.summary.average_monthly_expenses
            insights.append(
                InsightOut(
                    id="average-expenses",
                    type="info",
                    title="Average Monthly Expenses",
                    description=(
                        f"Your average monthly expenses are projected to be {average_expenses:.2f}, "
                        f"{_share_text(average_expenses, forecast.summary.average_monthly_income)}."
                    ),
                )
            )

        logger.debug("Generated %d insights for %d months", len(insights), len(months))
        return CashflowPredictionOut(
            cashflow=cashflow,
            top_categories=top_categories,
            insights=insights,
            summary=CashflowSummaryOut(
                total_income=total_income,
                total_expenses=total_expenses,
                net_cashflow=net,
                savings_rate=(net / total_income) * 100 if total_income > 0 else 0.0,
            ),
        )

    def top_categories(self, forecast: ForecastOut) -> list[TopCategoryOut]:
        totals: dict[str, float] = defaultdict(float)
        for month in forecast.forecast:
            for item in month.expenses:
                totals[item.category.name if item.category else "Uncategorized"] += item.amount
        ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        return [TopCategoryOut(name=name, amount=amount) for name, amount in ranked[: self.tuning.top_category_limit]]

    @staticmethod
    def _headline(net: float, month_count: int) -> InsightOut:
        horizon = "month" if month_count == 1 else f"{month_count} months"
        if net > 0:
            return InsightOut(
                id="net-positive",
                type="positive",
                title="Positive Cash Flow",
                description=f"You're projected to have a positive cash flow of {net:.2f} over the next {horizon}.",
            )
        return InsightOut(
            id="net-negative",
            type="negative",
            title="Negative Cash Flow",
            description=f"You're projected to have a negative cash flow of {abs(net):.2f} over the next {horizon}.",
        )

    def _month_changes(self, forecast: ForecastOut) -> list[InsightOut]:
        insights: list[InsightOut] = []
        months = forecast.forecast
        for prev, current in zip(months, months[1:]):
            previous_net = prev.summary.net_cashflow
            if previous_net == 0:
                continue
            percent = (current.summary.net_cashflow - previous_net) / abs(previous_net) * 100
            if abs(percent) <= self.tuning.net_change_insight_percent:
                continue
            direction = "increase" if percent > 0 else "decrease"
            insights.append(
                InsightOut(
                    id=f"net-change-{current.month}",
                    type="positive" if percent > 0 else "negative",
                    title=f"{current.month_name} Cash Flow Change",
                    description=(
                        f"Your net cash flow is projected to {direction} by {abs(percent):.1f}% "
                        f"in {current.month_name} compared to the previous month."
                    ),
                )
            )
        return insights

    def _concentration(self, top_categories: list[TopCategoryOut], forecast: ForecastOut) -> list[InsightOut]:
        month_count = len(forecast.forecast)
        if month_count == 0:
            return []
        average_income = forecast.summary.average_monthly_income
        insights: list[InsightOut] = []
        for category in top_categories:
            monthly_average = category.amount / month_count
            if monthly_average <= average_income * self.tuning.category_concentration_ratio:
                continue
            insights.append(
                InsightOut(
                    id=f"category-{category.name.lower().replace(' ', '-')}",
                    type="warning",
                    title=f"High {category.name} Expenses",
                    description=(
                        f"Your {category.name} expenses are projected to be {monthly_average:.2f} per month, "
                        f"{_share_text(monthly_average, average_income)}."
                    ),
                )
            )
        return insights
