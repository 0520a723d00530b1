from __future__ import annotations


class ForecastValidationError(ValueError):
    """Raised when forecast or recurrence input cannot produce a meaningful result."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
