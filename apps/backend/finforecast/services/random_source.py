"""
Random sources for statistical prediction

Variable-frequency categories are forecast with a bounded perturbation and a
pseudo-random day in the month. The composer only depends on the
``RandomSource`` protocol so callers can choose the policy.
"""

from __future__ import annotations

import random
from typing import Protocol

from finforecast.core.config import settings


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...

    def randint(self, a: int, b: int) -> int: ...


class NeutralRandomSource:
    """Deterministic source: zero perturbation, dates at the middle of the range."""

    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2

    def randint(self, a: int, b: int) -> int:
        return (a + b) // 2


def build_random_source(
    *, seed: int | None = None, deterministic: bool | None = None
) -> RandomSource:
    """Return the source selected by settings, with explicit arguments taking precedence."""
    if deterministic is None:
        deterministic = settings.FORECAST_DETERMINISTIC
    if deterministic:
        return NeutralRandomSource()
    if seed is None:
        seed = settings.FORECAST_RANDOM_SEED
    return random.Random(seed)
