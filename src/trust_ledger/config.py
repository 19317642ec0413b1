"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PnLSettings(BaseSettings):
    """Decimal precision used by the PnL calculator."""

    model_config = SettingsConfigDict(env_prefix="PNL_")

    scale: int = 18  # fractional digits kept on average cost
    precision: int = 50  # significant digits for the local decimal context

    @field_validator("scale")
    @classmethod
    def _min_scale(cls, value: int) -> int:
        if value < 8:
            raise ValueError("PnL scale must keep at least 8 fractional digits")
        return value


class AggregatorSettings(BaseSettings):
    """Token performance fan-out limits."""

    model_config = SettingsConfigDict(env_prefix="AGGREGATOR_")

    max_concurrency: int = 8  # simultaneous Price Feed calls
    fetch_timeout_seconds: float = 5.0
    price_max_age_seconds: float | None = None  # older snapshots count as data gaps


class TrustSettings(BaseSettings):
    """Recommender trust score blend.

    Weights are tunable; they should sum to 1.0 so the trust score stays in
    the 0-1 range. All fields configurable via TRUST_ environment variables.
    """

    model_config = SettingsConfigDict(env_prefix="TRUST_")

    weight_consistency: Decimal = Decimal("0.5")
    weight_performance: Decimal = Decimal("0.3")
    weight_decay: Decimal = Decimal("0.2")

    # Realized PnL percentages are clamped to +/- this before normalizing
    performance_cap: Decimal = Field(default=Decimal("100"), gt=0)

    # Recency decay: full weight inside the horizon, halves every half-life after
    decay_horizon_days: int = 30
    decay_half_life_days: int = Field(default=30, gt=0)

    # Risk score blend (failure ratio vs. downside performance)
    risk_weight_failures: Decimal = Decimal("0.6")
    risk_weight_downside: Decimal = Decimal("0.4")


class ReportSettings(BaseSettings):
    """Portfolio report generation."""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    store_timeout_seconds: float = 10.0


class ApiSettings(BaseSettings):
    """JSON API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    seed_path: str | None = None  # JSON rows loaded into the in-memory store


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"  # LOG_FORMAT
    pnl: PnLSettings = PnLSettings()
    aggregator: AggregatorSettings = AggregatorSettings()
    trust: TrustSettings = TrustSettings()
    report: ReportSettings = ReportSettings()
    api: ApiSettings = ApiSettings()
