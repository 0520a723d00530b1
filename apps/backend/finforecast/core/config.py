from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForecastTuning(BaseModel):
    """Business thresholds used by the analyzer, composer and summarizer.

    The values encode product tuning; change them only with product input.
    """

    # Pattern analyzer
    regularity_threshold: float = 0.8
    recurring_regularity_threshold: float = 0.85
    min_months_for_classification: int = 3
    cycle_presence_ratio: float = 0.5
    monthly_confidence: float = 0.9
    bimonthly_confidence: float = 0.8
    quarterly_confidence: float = 0.7
    variable_confidence: float = 0.5
    variable_confidence_floor: float = 0.4
    variable_confidence_ceiling: float = 0.7

    # Forecast composer
    recurring_confidence: float = 0.9
    budget_confidence: float = 0.6
    variable_perturbation: float = 0.2
    budget_day_offset: int = 15
    prediction_max_day_offset: int = 27

    # Insight summarizer
    net_change_insight_percent: float = 20.0
    category_concentration_ratio: float = 0.3
    top_category_limit: int = 5
    min_insights: int = 3


class Settings(BaseSettings):
    APP_NAME: str = "Finforecast"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = ["*"]

    # Trailing months of history fed to the pattern analyzer
    HISTORY_MONTHS: int = 6
    DEFAULT_FORECAST_MONTHS: int = 3
    MAX_FORECAST_MONTHS: int = 60
    CASHFLOW_MONTHS: int = 3
    # Upper bound on single-step iterations while walking a rule toward a window
    MAX_OCCURRENCE_STEPS: int = 50_000

    FORECAST_RANDOM_SEED: int | None = None
    FORECAST_DETERMINISTIC: bool = False

    TUNING: ForecastTuning = ForecastTuning()

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_prefix="FINFORECAST_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )


settings = Settings()
