"""Router registration for the forecast API."""

from fastapi import FastAPI

from . import forecast_router, recurring_router


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    app.include_router(forecast_router.router, prefix="/api")
    app.include_router(recurring_router.router, prefix="/api")
