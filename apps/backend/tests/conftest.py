from __future__ import annotations

from typing import Any, Generator

import pytest

from finforecast.core.deps import get_composer, get_ledger
from finforecast.core.ledger import InMemoryLedger
from finforecast.main import app
from finforecast.models import Category, CategoryType
from finforecast.services.forecast_service import ForecastComposer
from finforecast.services.random_source import NeutralRandomSource


@pytest.fixture()
def ledger() -> Generator[InMemoryLedger, Any, Any]:
    # Fresh store per test; user 1 gets a small category set
    store = InMemoryLedger()
    store.add_categories(
        1,
        [
            Category(id="salary", name="Salary", type=CategoryType.INCOME),
            Category(id="rent", name="Rent", type=CategoryType.EXPENSE),
            Category(id="groceries", name="Groceries", type=CategoryType.EXPENSE),
            Category(id="savings", name="Savings", type=CategoryType.SAVINGS),
        ],
    )
    yield store
    store.clear()


@pytest.fixture()
def composer() -> ForecastComposer:
    return ForecastComposer(random_source=NeutralRandomSource())


@pytest.fixture(autouse=True)
def override_dependency(ledger, composer):
    # FastAPI DI override
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_composer] = lambda: composer
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(ledger):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
