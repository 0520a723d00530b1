from __future__ import annotations

import gc
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest
from pydantic import ValidationError

from finforecast.core.errors import ForecastValidationError
from finforecast.models import RecurringFrequency, RecurringRule, TxnType
from finforecast.services.recurrence_service import (
    RecurrenceExpander,
    RecurrenceMaterializer,
    next_occurrence,
)


def _rule(**overrides) -> RecurringRule:
    data = {
        "id": "r1",
        "description": "Rent",
        "amount": 1000,
        "type": TxnType.EXPENSE,
        "frequency": RecurringFrequency.MONTHLY,
        "start_date": date(2024, 1, 15),
        "category_id": "rent",
    }
    data.update(overrides)
    return RecurringRule(**data)


@pytest.fixture()
def expander() -> RecurrenceExpander:
    return RecurrenceExpander()


class TestExpandOccurrences:
    def test_monthly_single_occurrence_in_window(self, expander):
        rule = _rule(day_of_month=15)
        assert expander.expand_occurrences(rule, date(2024, 3, 1), date(2024, 3, 31)) == [date(2024, 3, 15)]

    def test_day_31_clamps_to_leap_february(self, expander):
        rule = _rule(day_of_month=31, start_date=date(2024, 1, 31))
        assert expander.expand_occurrences(rule, date(2024, 2, 1), date(2024, 2, 29)) == [date(2024, 2, 29)]

    def test_day_31_returns_to_month_end_after_february(self, expander):
        rule = _rule(day_of_month=31, start_date=date(2023, 1, 31))
        dates = expander.expand_occurrences(rule, date(2023, 1, 1), date(2023, 4, 30))
        assert dates == [date(2023, 1, 31), date(2023, 2, 28), date(2023, 3, 31), date(2023, 4, 30)]

    def test_monthly_without_day_of_month_keeps_start_day(self, expander):
        rule = _rule(start_date=date(2024, 1, 31))
        dates = expander.expand_occurrences(rule, date(2024, 2, 1), date(2024, 3, 31))
        assert dates == [date(2024, 2, 29), date(2024, 3, 31)]

    def test_weekly_aligns_to_day_of_week(self, expander):
        # 2024-01-05 is a Friday (5 with Sunday = 0)
        rule = _rule(frequency=RecurringFrequency.WEEKLY, start_date=date(2024, 1, 5), day_of_week=5)
        dates = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 1, 31))
        assert dates == [date(2024, 1, 5), date(2024, 1, 12), date(2024, 1, 19), date(2024, 1, 26)]

    def test_weekly_shift_is_forward_only(self):
        # Monday start, Friday anchor: the step lands on Monday and moves ahead four days
        rule = _rule(frequency=RecurringFrequency.WEEKLY, start_date=date(2024, 1, 1), day_of_week=5)
        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 12)

    def test_biweekly(self, expander):
        rule = _rule(frequency=RecurringFrequency.BIWEEKLY, start_date=date(2024, 1, 5), day_of_week=5)
        dates = expander.expand_occurrences(rule, date(2024, 2, 1), date(2024, 2, 29))
        assert dates == [date(2024, 2, 2), date(2024, 2, 16)]

    def test_daily(self, expander):
        rule = _rule(frequency=RecurringFrequency.DAILY, start_date=date(2024, 3, 1))
        dates = expander.expand_occurrences(rule, date(2024, 3, 10), date(2024, 3, 12))
        assert dates == [date(2024, 3, 10), date(2024, 3, 11), date(2024, 3, 12)]

    def test_quarterly_clamps_each_quarter(self, expander):
        rule = _rule(frequency=RecurringFrequency.QUARTERLY, start_date=date(2024, 1, 31), day_of_month=31)
        dates = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 12, 31))
        assert dates == [date(2024, 1, 31), date(2024, 4, 30), date(2024, 7, 31), date(2024, 10, 31)]

    def test_yearly_leap_day(self, expander):
        rule = _rule(frequency=RecurringFrequency.YEARLY, start_date=date(2024, 2, 29))
        dates = expander.expand_occurrences(rule, date(2025, 1, 1), date(2028, 12, 31))
        assert dates == [date(2025, 2, 28), date(2026, 2, 28), date(2027, 2, 28), date(2028, 2, 29)]

    def test_end_date_truncates(self, expander):
        rule = _rule(end_date=date(2024, 3, 20))
        dates = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 12, 31))
        assert dates == [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)]

    def test_window_after_end_date_is_empty(self, expander):
        rule = _rule(end_date=date(2024, 3, 20))
        assert expander.expand_occurrences(rule, date(2024, 4, 1), date(2024, 4, 30)) == []

    def test_inactive_rule_is_empty(self, expander):
        rule = _rule(is_active=False)
        assert expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 12, 31)) == []

    def test_seeds_from_last_generated_date(self, expander):
        rule = _rule(last_generated_date=date(2024, 5, 15))
        dates = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 6, 30))
        assert dates == [date(2024, 5, 15), date(2024, 6, 15)]

    def test_inverted_window_rejected(self, expander):
        with pytest.raises(ForecastValidationError):
            expander.expand_occurrences(_rule(), date(2024, 3, 1), date(2024, 2, 1))

    def test_step_bound(self):
        rule = _rule(frequency=RecurringFrequency.DAILY, start_date=date(2024, 1, 1))
        with pytest.raises(ForecastValidationError):
            RecurrenceExpander(max_steps=10).expand_occurrences(rule, date(2024, 3, 1), date(2024, 3, 2))

    def test_deterministic(self, expander):
        rule = _rule(frequency=RecurringFrequency.BIWEEKLY, start_date=date(2024, 1, 3), day_of_week=3)
        first = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 12, 31))
        second = expander.expand_occurrences(rule, date(2024, 1, 1), date(2024, 12, 31))
        assert first == second

    @pytest.mark.parametrize("frequency", list(RecurringFrequency))
    def test_containment(self, expander, frequency):
        rule = _rule(
            frequency=frequency,
            start_date=date(2023, 11, 30),
            end_date=date(2025, 6, 1),
            day_of_month=30,
            day_of_week=2,
        )
        windows = [
            (date(2023, 1, 1), date(2023, 12, 31)),
            (date(2024, 2, 1), date(2024, 2, 29)),
            (date(2025, 5, 15), date(2025, 8, 1)),
        ]
        for start, end in windows:
            dates = expander.expand_occurrences(rule, start, end)
            assert dates == sorted(dates)
            for d in dates:
                assert start <= d <= end
                assert rule.start_date <= d <= rule.end_date

    def test_monthly_spacing(self, expander):
        rule = _rule(day_of_month=31, start_date=date(2024, 1, 31))
        dates = expander.expand_occurrences(rule, date(2024, 1, 1), date(2025, 12, 31))
        assert len(dates) == 24
        for prev, current in zip(dates, dates[1:]):
            assert (current.year * 12 + current.month) - (prev.year * 12 + prev.month) == 1


class TestPreview:
    def test_pagination(self, expander):
        rule = _rule(day_of_month=1, start_date=date(2024, 1, 1))
        page = expander.preview(rule, date(2024, 1, 1), date(2024, 5, 31), page=3, page_size=2)
        assert page.total_count == 5
        assert page.page == 3
        assert page.items == [date(2024, 5, 1)]

    def test_page_beyond_last_falls_back(self, expander):
        rule = _rule(day_of_month=1, start_date=date(2024, 1, 1))
        page = expander.preview(rule, date(2024, 1, 1), date(2024, 5, 31), page=10, page_size=2)
        assert page.page == 3

    def test_empty(self, expander):
        page = expander.preview(_rule(is_active=False), date(2024, 1, 1), date(2024, 5, 31))
        assert page.total_count == 0
        assert page.items == []


class TestMaterializer:
    def test_catches_up_and_advances_high_water_mark(self):
        rule = _rule(start_date=date(2024, 1, 10), day_of_month=10)
        materializer = RecurrenceMaterializer()

        result = materializer.materialize_due([rule], date(2024, 3, 15))
        assert [t.date for t in result.transactions] == [date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10)]
        assert rule.last_generated_date == date(2024, 3, 10)
        assert result.transactions[0].id == "rule-r1-2024-01-10"
        assert all(t.category_id == "rent" for t in result.transactions)

    def test_never_materializes_twice(self):
        rule = _rule(start_date=date(2024, 1, 10), day_of_month=10)
        materializer = RecurrenceMaterializer()
        materializer.materialize_due([rule], date(2024, 3, 15))

        again = materializer.materialize_due([rule], date(2024, 3, 15))
        assert again.generated == 0
        assert again.skipped == 1
        assert again.details[0].reason == "No occurrence is due"

        later = materializer.materialize_due([rule], date(2024, 4, 10))
        assert [t.date for t in later.transactions] == [date(2024, 4, 10)]

    def test_future_start_is_skipped(self):
        rule = _rule(start_date=date(2025, 1, 1))
        result = RecurrenceMaterializer().materialize_due([rule], date(2024, 6, 1))
        assert result.generated == 0
        assert result.details[0].status == "skipped"
        assert result.details[0].reason == "Start date is in the future"
        assert rule.last_generated_date is None

    def test_past_end_date_deactivates(self):
        rule = _rule(start_date=date(2024, 1, 10), end_date=date(2024, 2, 15))
        result = RecurrenceMaterializer().materialize_due([rule], date(2024, 3, 31))
        assert [t.date for t in result.transactions] == [date(2024, 1, 10), date(2024, 2, 10)]
        assert rule.is_active is False

    def test_income_rule_drops_category(self):
        rule = _rule(type=TxnType.INCOME, description="Salary", category_id="salary", start_date=date(2024, 1, 1))
        result = RecurrenceMaterializer().materialize_due([rule], date(2024, 1, 31))
        assert result.transactions[0].category_id is None
        assert result.transactions[0].type == TxnType.INCOME

    def test_failing_rule_does_not_block_others(self):
        rent = _rule(start_date=date(2024, 1, 1), day_of_month=1)
        daily = _rule(id="r2", frequency=RecurringFrequency.DAILY, start_date=date(2024, 1, 1))
        materializer = RecurrenceMaterializer(RecurrenceExpander(max_steps=10))

        result = materializer.materialize_due([rent, daily], date(2024, 3, 1))
        assert [t.date for t in result.transactions] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
        assert rent.last_generated_date == date(2024, 3, 1)
        failed = result.details[1]
        assert failed.status == "skipped"
        assert "more than 10" in failed.reason
        assert daily.last_generated_date is None

    def test_lock_registry_releases_finished_rules(self):
        materializer = RecurrenceMaterializer()
        rules = [_rule(id=f"r{i}", start_date=date(2024, 1, 1)) for i in range(5)]
        materializer.materialize_due(rules, date(2024, 2, 1))
        gc.collect()
        assert len(materializer._locks) == 0

    def test_concurrent_materialization_is_at_most_once(self):
        rule = _rule(frequency=RecurringFrequency.DAILY, start_date=date(2024, 1, 1))
        materializer = RecurrenceMaterializer()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: materializer.materialize_rule(rule, date(2024, 1, 31)), range(8)))
        dates = [t.date for transactions, _ in results for t in transactions]
        assert len(dates) == 31
        assert len(set(dates)) == 31
        assert rule.last_generated_date == date(2024, 1, 31)


class TestRuleValidation:
    def test_expense_requires_category(self):
        with pytest.raises(ValidationError):
            _rule(category_id=None)

    def test_day_of_month_range(self):
        with pytest.raises(ValidationError):
            _rule(day_of_month=32)

    def test_day_of_week_range(self):
        with pytest.raises(ValidationError):
            _rule(day_of_week=7)

    def test_end_before_start(self):
        with pytest.raises(ValidationError):
            _rule(end_date=date(2023, 12, 31))

    def test_amount_positive(self):
        with pytest.raises(ValidationError):
            _rule(amount=0)

    def test_camel_case_input(self):
        rule = RecurringRule.model_validate(
            {
                "id": 7,
                "description": "Gym",
                "amount": 40,
                "type": "expense",
                "frequency": "monthly",
                "startDate": "2024-01-05",
                "categoryId": 3,
                "dayOfMonth": 5,
            }
        )
        assert rule.id == "7"
        assert rule.category_id == "3"
        assert rule.day_of_month == 5
