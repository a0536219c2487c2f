"""Exchange pool configuration management.

Configuration sources (in priority order):
1. Environment variables (EXPOOL_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from exchange_pool.errors import ConfigurationError


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5500"]
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value


class PoolSettings(BaseModel):
    """Pool sizing and persistence configuration."""

    # One pool per USD price point, e.g. [25, 35, 50]
    price_points: list[int] = Field(default_factory=lambda: [25])
    size_per_price: int = Field(default=5, ge=1)
    min_size: int = Field(default=3, ge=0)
    store_path: str = "exchange-pool.json"
    # instant: replenish after every consume; min_size: only when below min_size
    replenish_policy: Literal["instant", "min_size"] = "instant"

    @field_validator("price_points", mode="before")
    @classmethod
    def _parse_price_points(cls, value: Any) -> Any:
        """Accept "25,35,50" and drop entries that are not positive integers."""
        if isinstance(value, (int, str)):
            value = str(value).split(",")
        if not isinstance(value, (list, tuple)):
            return value

        points: list[int] = []
        for raw in value:
            try:
                point = int(str(raw).strip())
            except ValueError:
                continue
            if point > 0 and point not in points:
                points.append(point)
        return points


class ReplenishConfig(BaseModel):
    """Retry, backoff and pacing for item creation."""

    max_retries: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=2.0, ge=0)
    pacing_seconds: float = Field(default=2.0, ge=0)
    attempt_timeout_seconds: float = Field(default=300.0, gt=0)


class KeepWarmConfig(BaseModel):
    """Self-ping to keep an idle host from suspending the process."""

    enabled: bool = True
    interval_seconds: float = Field(default=300.0, gt=0)
    url: str | None = None  # defaults to http://127.0.0.1:<port>/health
    timeout_seconds: float = 10.0


class SchedulerConfig(BaseModel):
    """Background maintenance timers."""

    disk_sync_interval_seconds: float = Field(default=5.0, gt=0)
    health_audit_interval_seconds: float = Field(default=60.0, gt=0)
    audit_on_startup: bool = True
    keep_warm: KeepWarmConfig = Field(default_factory=KeepWarmConfig)


class CreatorConfig(BaseModel):
    """SimpleSwap creator (BrightData scraping browser) configuration."""

    wallet_address: str = "0x1372Ad41B513b9d6eC008086C03d69C635bAE578"
    base_url: str = "https://simpleswap.io"
    from_currency: str = "usd-usd"
    to_currency: str = "pol-matic"
    brightdata_customer_id: str | None = None
    brightdata_zone: str | None = None
    brightdata_password: str | None = None
    webdriver_host: str = "brd.superproxy.io:9515"
    page_load_timeout: int = 120
    element_timeout: int = 30
    quote_timeout: int = 30
    button_timeout: int = 40
    redirect_timeout: int = 120
    # Hard cap on one whole browser session; every step wait is clipped to it
    session_timeout_seconds: float = Field(default=240.0, gt=0)

    @property
    def has_credentials(self) -> bool:
        return bool(
            self.brightdata_customer_id and self.brightdata_zone and self.brightdata_password
        )

    @property
    def webdriver_url(self) -> str:
        username = f"brd-customer-{self.brightdata_customer_id}-zone-{self.brightdata_zone}"
        return f"https://{username}:{self.brightdata_password}@{self.webdriver_host}"


class MailosaurConfig(BaseModel):
    """Mailosaur inbox used for OTP verification e-mails."""

    api_key: str | None = None
    server_id: str | None = None
    base_url: str = "https://mailosaur.com"
    timeout_seconds: float = 120.0


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: str = "INFO"
    json_logs: bool = False


class Settings(BaseSettings):
    """Exchange pool application settings."""

    model_config = SettingsConfigDict(
        env_prefix="EXPOOL_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    replenish: ReplenishConfig = Field(default_factory=ReplenishConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    creator: CreatorConfig = Field(default_factory=CreatorConfig)
    mailosaur: MailosaurConfig = Field(default_factory=MailosaurConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values passed in from the YAML file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @model_validator(mode="after")
    def _check_attempt_timeout(self) -> "Settings":
        # A timed-out attempt is retried while its worker thread may still be
        # running, so the session must always end before the attempt does.
        if self.replenish.attempt_timeout_seconds <= self.creator.session_timeout_seconds:
            raise ValueError(
                f"replenish.attempt_timeout_seconds ({self.replenish.attempt_timeout_seconds}) "
                f"must exceed creator.session_timeout_seconds "
                f"({self.creator.session_timeout_seconds})"
            )
        return self

    @property
    def keep_warm_url(self) -> str:
        return self.scheduler.keep_warm.url or f"http://127.0.0.1:{self.server.port}/health"


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Resolved configuration of a single price-point pool."""

    pool_id: str
    target_size: int
    min_size: int
    amount: int

    @property
    def description(self) -> str:
        return f"${self.amount} exchange pool"


def build_pool_configs(settings: Settings) -> dict[str, PoolConfig]:
    """Build per-pool configuration from settings.

    Raises:
        ConfigurationError: If no valid price point is configured or
            min_size exceeds the pool size.
    """
    pool_settings = settings.pool
    if not pool_settings.price_points:
        raise ConfigurationError(
            "No valid price points configured. "
            "Set EXPOOL_POOL__PRICE_POINTS (e.g. '[25, 35, 50]')."
        )
    if pool_settings.min_size > pool_settings.size_per_price:
        raise ConfigurationError(
            f"min_size ({pool_settings.min_size}) must not exceed "
            f"size_per_price ({pool_settings.size_per_price})"
        )

    return {
        str(price): PoolConfig(
            pool_id=str(price),
            target_size=pool_settings.size_per_price,
            min_size=pool_settings.min_size,
            amount=price,
        )
        for price in pool_settings.price_points
    }


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. EXPOOL_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/exchange-pool/config.yaml
    """
    import os

    config_paths = [
        os.environ.get("EXPOOL_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/exchange-pool/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. YAML config file (if exists)
    2. Environment variables (override)
    3. Defaults
    """
    file_config = _load_config_file()
    return Settings(**file_config)
