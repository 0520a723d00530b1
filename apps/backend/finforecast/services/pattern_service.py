"""
Historical pattern analysis per category

Groups transactions by category, measures how regular monthly totals are and
classifies each category as monthly / bimonthly / quarterly / variable.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from finforecast.core.config import ForecastTuning, settings
from finforecast.core.errors import ForecastValidationError
from finforecast.models import (
    UNCATEGORIZED_KEY,
    Category,
    PatternFrequency,
    TransactionRecord,
    TxnType,
)
from finforecast.schemas import CategoryPattern
from finforecast.utils.dates import add_months, month_floor, month_key, months_between


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryWindow:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ForecastValidationError("history window end must not be before its start", field="history_window")

    @classmethod
    def trailing(cls, today: date, months: int | None = None) -> "HistoryWindow":
        """From the first day of the month ``months`` before ``today`` through ``today``."""
        if months is None:
            months = settings.HISTORY_MONTHS
        if months < 0:
            raise ForecastValidationError("history months must not be negative", field="history_months")
        return cls(start=add_months(month_floor(today), -months), end=today)

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _bucket_key(txn: TransactionRecord) -> str:
    return txn.category_id if txn.category_id is not None else UNCATEGORIZED_KEY


def _majority_flow(transactions: list[TransactionRecord]) -> TxnType:
    counts = Counter(txn.type for txn in transactions)
    if counts[TxnType.INCOME] > counts[TxnType.EXPENSE]:
        return TxnType.INCOME
    return TxnType.EXPENSE


class PatternAnalyzer:
    """Derive ``CategoryPattern`` statistics from a transaction snapshot."""

    def __init__(self, tuning: ForecastTuning | None = None) -> None:
        self.tuning = tuning or settings.TUNING

    def analyze(
        self,
        transactions: Iterable[TransactionRecord],
        categories: Iterable[Category],
        history_window: HistoryWindow | None = None,
    ) -> dict[str, CategoryPattern]:
        category_map = {c.id: c for c in categories}

        buckets: dict[str, list[TransactionRecord]] = defaultdict(list)
        for txn in transactions:
            if history_window is not None and not history_window.contains(txn.date):
                continue
            buckets[_bucket_key(txn)].append(txn)

        patterns: dict[str, CategoryPattern] = {}
        for category_id, category in category_map.items():
            patterns[category_id] = self._analyze_bucket(category_id, category.type.flow, buckets.get(category_id, []))

        for key, bucket in buckets.items():
            if key in patterns:
                continue
            # Unknown categories and the uncategorized bucket take their flow from the data
            patterns[key] = self._analyze_bucket(key, _majority_flow(bucket), bucket)

        if UNCATEGORIZED_KEY not in patterns:
            patterns[UNCATEGORIZED_KEY] = self._analyze_bucket(UNCATEGORIZED_KEY, TxnType.EXPENSE, [])

        return patterns

    def _analyze_bucket(
        self, category_id: str, flow: TxnType, transactions: list[TransactionRecord]
    ) -> CategoryPattern:
        if not transactions:
            return CategoryPattern(
                category_id=category_id,
                type=flow,
                confidence=self.tuning.variable_confidence_floor,
            )

        total = sum(txn.amount for txn in transactions)
        count = len(transactions)

        monthly_totals: dict[str, float] = defaultdict(float)
        for txn in transactions:
            monthly_totals[month_key(txn.date)] += txn.amount
        monthly_totals = dict(sorted(monthly_totals.items()))
        month_count = len(monthly_totals)

        average_amount = total / count
        regularity = self._regularity(list(monthly_totals.values()))
        frequency, offset, confidence = self._classify(monthly_totals, average_amount, regularity)
        is_mainly_recurring = regularity > self.tuning.recurring_regularity_threshold and frequency in (
            PatternFrequency.MONTHLY,
            PatternFrequency.BIMONTHLY,
            PatternFrequency.QUARTERLY,
        )

        logger.debug(
            "category=%s months=%d regularity=%.3f frequency=%s offset=%d recurring=%s",
            category_id,
            month_count,
            regularity,
            frequency.value,
            offset,
            is_mainly_recurring,
        )

        return CategoryPattern(
            category_id=category_id,
            type=flow,
            total_amount=total,
            transaction_count=count,
            months_observed=month_count,
            average_amount=average_amount,
            average_monthly=total / month_count,
            monthly_totals=monthly_totals,
            regularity=regularity,
            frequency=frequency,
            offset=offset,
            confidence=confidence,
            is_mainly_recurring=is_mainly_recurring,
        )

    @staticmethod
    def _regularity(values: list[float]) -> float:
        """1 - coefficient of variation of monthly totals, clamped to [0, 1]."""
        if len(values) < 2:
            return 0.0
        mean = statistics.fmean(values)
        if mean <= 0:
            return 0.0
        cv = statistics.pstdev(values) / mean
        return _clamp(1 - cv, 0.0, 1.0)

    def _classify(
        self,
        monthly_totals: dict[str, float],
        average_amount: float,
        regularity: float,
    ) -> tuple[PatternFrequency, int, float]:
        t = self.tuning
        if regularity <= t.regularity_threshold or len(monthly_totals) < t.min_months_for_classification:
            return (
                PatternFrequency.VARIABLE,
                0,
                _clamp(regularity, t.variable_confidence_floor, t.variable_confidence_ceiling),
            )

        keys = list(monthly_totals.keys())
        first = date.fromisoformat(f"{keys[0]}-01")
        last = date.fromisoformat(f"{keys[-1]}-01")
        span = months_between(first, last) + 1
        calendar_keys = [month_key(add_months(first, i)) for i in range(span)]

        if all(k in monthly_totals for k in calendar_keys):
            return PatternFrequency.MONTHLY, 0, t.monthly_confidence

        minimum = average_amount * t.cycle_presence_ratio
        for frequency, confidence in (
            (PatternFrequency.BIMONTHLY, t.bimonthly_confidence),
            (PatternFrequency.QUARTERLY, t.quarterly_confidence),
        ):
            period = frequency.period
            for offset in range(period):
                expected = calendar_keys[offset::period]
                if expected and all(monthly_totals.get(k, 0.0) >= minimum for k in expected):
                    return frequency, offset, confidence

        return PatternFrequency.VARIABLE, 0, t.variable_confidence
