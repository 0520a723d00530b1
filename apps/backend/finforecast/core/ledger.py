from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from finforecast.models import BudgetTemplateEntry, Category, RecurringRule, TransactionRecord


@dataclass
class LedgerSnapshot:
    """Request-local copies of one user's forecast inputs."""

    transactions: list[TransactionRecord] = field(default_factory=list)
    rules: list[RecurringRule] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    budget_templates: list[BudgetTemplateEntry] = field(default_factory=list)


class InMemoryLedger:
    """
    Per-user in-memory store of forecast inputs.

    ``snapshot`` hands out copies so forecast requests never share mutable
    state; ``rules_for_update`` returns the stored rule objects for
    materialization, which writes back ``last_generated_date``.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._data: dict[int, LedgerSnapshot] = {}

    def _user(self, user_id: int) -> LedgerSnapshot:
        return self._data.setdefault(user_id, LedgerSnapshot())

    def add_transactions(self, user_id: int, items: list[TransactionRecord]) -> None:
        with self._lock:
            self._user(user_id).transactions.extend(items)

    def add_rules(self, user_id: int, items: list[RecurringRule]) -> None:
        with self._lock:
            self._user(user_id).rules.extend(items)

    def add_categories(self, user_id: int, items: list[Category]) -> None:
        with self._lock:
            self._user(user_id).categories.extend(items)

    def add_budget_templates(self, user_id: int, items: list[BudgetTemplateEntry]) -> None:
        with self._lock:
            self._user(user_id).budget_templates.extend(items)

    def snapshot(self, user_id: int) -> LedgerSnapshot:
        with self._lock:
            data = self._data.get(user_id) or LedgerSnapshot()
            return LedgerSnapshot(
                transactions=list(data.transactions),
                rules=[r.model_copy() for r in data.rules],
                categories=list(data.categories),
                budget_templates=list(data.budget_templates),
            )

    def get_rule(self, user_id: int, rule_id: str) -> RecurringRule | None:
        with self._lock:
            data = self._data.get(user_id)
            if data is None:
                return None
            return next((r for r in data.rules if r.id == rule_id), None)

    def rules_for_update(self, user_id: int, rule_id: str | None = None) -> list[RecurringRule]:
        with self._lock:
            data = self._data.get(user_id)
            if data is None:
                return []
            return [r for r in data.rules if rule_id is None or r.id == rule_id]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


ledger = InMemoryLedger()
