"""
Recurring rule expansion and materialization

- ``RecurrenceExpander``: read-only expansion of a rule over a date window
- ``RecurrenceMaterializer``: catch-up of due occurrences that advances
  ``last_generated_date``

Both share ``next_occurrence`` as the single stepping function.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from threading import Lock
from weakref import WeakValueDictionary

from finforecast.core.config import settings
from finforecast.core.errors import ForecastValidationError
from finforecast.models import RecurringFrequency, RecurringRule, TransactionRecord, TxnType
from finforecast.utils.dates import add_months, sunday_based_weekday


logger = logging.getLogger(__name__)


_DAY_STEPS: dict[RecurringFrequency, int] = {
    RecurringFrequency.DAILY: 1,
    RecurringFrequency.WEEKLY: 7,
    RecurringFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS: dict[RecurringFrequency, int] = {
    RecurringFrequency.MONTHLY: 1,
    RecurringFrequency.QUARTERLY: 3,
    RecurringFrequency.YEARLY: 12,
}


def _align_weekday(value: date, day_of_week: int | None) -> date:
    """Move forward (0-6 days) to ``day_of_week``; never backward."""
    if day_of_week is None:
        return value
    return value + timedelta(days=(day_of_week - sunday_based_weekday(value)) % 7)


def next_occurrence(rule: RecurringRule, current: date) -> date:
    """Single period step from ``current`` following the rule's frequency and anchors."""
    if rule.frequency in _DAY_STEPS:
        stepped = current + timedelta(days=_DAY_STEPS[rule.frequency])
        if rule.frequency.is_week_based:
            stepped = _align_weekday(stepped, rule.day_of_week)
        return stepped
    return add_months(current, _MONTH_STEPS[rule.frequency], day=rule.anchor_day)


def _seed(rule: RecurringRule) -> date:
    return rule.last_generated_date or rule.start_date


class RecurrenceExpander:
    """Expand recurring rules into occurrence dates without side effects."""

    def __init__(self, max_steps: int | None = None) -> None:
        self.max_steps = max_steps if max_steps is not None else settings.MAX_OCCURRENCE_STEPS

    def advance_to_window(self, rule: RecurringRule, cursor: date, window_start: date) -> date:
        """Step ``cursor`` forward until it reaches or passes ``window_start``."""
        steps = 0
        while cursor < window_start:
            cursor = next_occurrence(rule, cursor)
            steps += 1
            if steps > self.max_steps:
                raise ForecastValidationError(
                    f"Rule {rule.id} needs more than {self.max_steps} steps to reach {window_start.isoformat()}",
                    field="window_start",
                )
        return cursor

    def expand_occurrences(self, rule: RecurringRule, window_start: date, window_end: date) -> list[date]:
        if window_end < window_start:
            raise ForecastValidationError("window_end must not be before window_start", field="window_end")
        if not rule.is_active:
            return []
        if rule.end_date is not None and window_start > rule.end_date:
            return []

        last_allowed = window_end
        if rule.end_date is not None and rule.end_date < last_allowed:
            last_allowed = rule.end_date

        cursor = self.advance_to_window(rule, _seed(rule), window_start)
        occurrences: list[date] = []
        while cursor <= last_allowed:
            occurrences.append(cursor)
            if len(occurrences) > self.max_steps:
                raise ForecastValidationError(
                    f"Rule {rule.id} produces more than {self.max_steps} occurrences in the window",
                    field="window_end",
                )
            cursor = next_occurrence(rule, cursor)
        return occurrences

    def preview(
        self,
        rule: RecurringRule,
        start: date,
        end: date,
        *,
        page: int = 1,
        page_size: int = 20,
    ) -> "OccurrencePage":
        """Paginated view over ``expand_occurrences``; out-of-range pages fall back to the last one."""
        if page < 1 or page_size < 1:
            raise ForecastValidationError("page and page_size must be positive", field="page")
        all_dates = self.expand_occurrences(rule, start, end)
        total_count = len(all_dates)
        if total_count == 0:
            return OccurrencePage(items=[], total_count=0, page=1, page_size=page_size)

        page_count = max(1, math.ceil(total_count / page_size))
        current_page = min(page, page_count)
        offset = (current_page - 1) * page_size
        return OccurrencePage(
            items=all_dates[offset : offset + page_size],
            total_count=total_count,
            page=current_page,
            page_size=page_size,
        )


@dataclass
class OccurrencePage:
    items: list[date]
    total_count: int
    page: int
    page_size: int


@dataclass
class MaterializationDetail:
    rule_id: str
    description: str
    status: str  # 'generated' | 'skipped'
    dates: list[date] = field(default_factory=list)
    reason: str | None = None


@dataclass
class MaterializationResult:
    transactions: list[TransactionRecord] = field(default_factory=list)
    details: list[MaterializationDetail] = field(default_factory=list)

    @property
    def generated(self) -> int:
        return len(self.transactions)

    @property
    def skipped(self) -> int:
        return sum(1 for d in self.details if d.status == "skipped")


class RecurrenceMaterializer:
    """
    Catch up recurring rules by turning due occurrences into transactions.

    ``last_generated_date`` is the high-water mark: a date at or before it is
    never emitted again. Calls for the same rule id are serialized.
    """

    def __init__(self, expander: RecurrenceExpander | None = None) -> None:
        self.expander = expander or RecurrenceExpander()
        # Entries vanish once no caller holds the lock
        self._locks: WeakValueDictionary[str, Lock] = WeakValueDictionary()
        self._registry_lock = Lock()

    def _lock_for(self, rule_id: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(rule_id)
            if lock is None:
                lock = Lock()
                self._locks[rule_id] = lock
            return lock

    def due_dates(self, rule: RecurringRule, until: date) -> list[date]:
        """Occurrences after the high-water mark and on or before ``until``."""
        if rule.last_generated_date is None:
            first = rule.start_date
        else:
            first = next_occurrence(rule, rule.last_generated_date)
        if first > until:
            return []
        if rule.end_date is not None and first > rule.end_date:
            return []
        # Pin the anchor day: ``first`` may be a clamped date such as Feb 28
        shadow = rule.model_copy(
            update={"last_generated_date": None, "start_date": first, "day_of_month": rule.anchor_day}
        )
        return self.expander.expand_occurrences(shadow, first, until)

    def materialize_rule(self, rule: RecurringRule, until: date) -> tuple[list[TransactionRecord], MaterializationDetail]:
        with self._lock_for(rule.id):
            if not rule.is_active:
                return [], MaterializationDetail(rule.id, rule.description, "skipped", reason="Rule is inactive")
            if rule.start_date > until:
                return [], MaterializationDetail(
                    rule.id, rule.description, "skipped", reason="Start date is in the future"
                )

            dates = self.due_dates(rule, until)
            transactions = [self._build_transaction(rule, d) for d in dates]
            if dates:
                rule.last_generated_date = dates[-1]

            if rule.end_date is not None and rule.end_date < until:
                rule.is_active = False

            if not dates:
                reason = "End date has passed, marked as inactive" if not rule.is_active else "No occurrence is due"
                return [], MaterializationDetail(rule.id, rule.description, "skipped", reason=reason)
            return transactions, MaterializationDetail(rule.id, rule.description, "generated", dates=dates)

    def materialize_due(self, rules: list[RecurringRule], until: date) -> MaterializationResult:
        result = MaterializationResult()
        for rule in rules:
            try:
                transactions, detail = self.materialize_rule(rule, until)
            except ForecastValidationError as exc:
                # The failing rule keeps its mark; the others still get persisted
                logger.warning("Skipping rule %s: %s", rule.id, exc.message)
                transactions = []
                detail = MaterializationDetail(rule.id, rule.description, "skipped", reason=exc.message)
            result.transactions.extend(transactions)
            result.details.append(detail)
        logger.info(
            "Materialized %d occurrences across %d rules (skipped %d) until %s",
            result.generated,
            len(rules),
            result.skipped,
            until.isoformat(),
        )
        return result

    @staticmethod
    def _build_transaction(rule: RecurringRule, occurred_at: date) -> TransactionRecord:
        return TransactionRecord(
            id=f"rule-{rule.id}-{occurred_at.isoformat()}",
            description=rule.description,
            amount=rule.amount,
            type=rule.type,
            date=occurred_at,
            category_id=rule.category_id if rule.type == TxnType.EXPENSE else None,
        )
