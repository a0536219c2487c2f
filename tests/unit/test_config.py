"""Unit tests for settings loading and pool configuration."""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from exchange_pool.config import (
    CreatorConfig,
    Settings,
    build_pool_configs,
    get_settings,
)
from exchange_pool.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """No stray EXPOOL_* variables or config.yaml from the host."""
    for key in list(os.environ):
        if key.startswith("EXPOOL_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestPricePoints:
    def test_comma_separated(self):
        settings = Settings(pool={"price_points": "25,35,50"})

        assert settings.pool.price_points == [25, 35, 50]

    def test_invalid_and_duplicate_entries_dropped(self):
        settings = Settings(pool={"price_points": "25, abc, 0, -5, 35, 25"})

        assert settings.pool.price_points == [25, 35]

    def test_list_value(self):
        settings = Settings(pool={"price_points": [50, "75"]})

        assert settings.pool.price_points == [50, 75]

    def test_single_value(self):
        assert Settings(pool={"price_points": 40}).pool.price_points == [40]


class TestBuildPoolConfigs:
    def test_one_pool_per_price(self):
        settings = Settings(pool={"price_points": [25, 50], "size_per_price": 4, "min_size": 2})

        configs = build_pool_configs(settings)

        assert list(configs) == ["25", "50"]
        assert configs["50"].amount == 50
        assert configs["50"].target_size == 4
        assert configs["50"].min_size == 2
        assert configs["50"].description == "$50 exchange pool"

    def test_no_valid_price_points(self):
        settings = Settings(pool={"price_points": "abc,,0"})

        with pytest.raises(ConfigurationError, match="No valid price points"):
            build_pool_configs(settings)

    def test_min_size_above_target(self):
        settings = Settings(pool={"size_per_price": 2, "min_size": 3})

        with pytest.raises(ConfigurationError, match="min_size"):
            build_pool_configs(settings)


class TestSources:
    def test_defaults(self):
        settings = Settings()

        assert settings.server.port == 3000
        assert settings.pool.price_points == [25]
        assert settings.pool.size_per_price == 5
        assert settings.pool.min_size == 3
        assert settings.pool.replenish_policy == "instant"
        assert settings.replenish.max_retries == 3
        assert settings.scheduler.disk_sync_interval_seconds == 5
        assert settings.keep_warm_url == "http://127.0.0.1:3000/health"

    def test_env_overrides_init_values(self, monkeypatch):
        monkeypatch.setenv("EXPOOL_POOL__SIZE_PER_PRICE", "7")
        monkeypatch.setenv("EXPOOL_SERVER__PORT", "8080")

        settings = Settings(pool={"price_points": [25], "size_per_price": 5})

        assert settings.pool.size_per_price == 7
        assert settings.pool.price_points == [25]
        assert settings.server.port == 8080

    def test_env_price_points_json(self, monkeypatch):
        monkeypatch.setenv("EXPOOL_POOL__PRICE_POINTS", "[25, 35, 50]")

        assert Settings().pool.price_points == [25, 35, 50]

    def test_allowed_origins_comma_string(self):
        settings = Settings(server={"allowed_origins": "https://a.test, https://b.test"})

        assert settings.server.allowed_origins == ["https://a.test", "https://b.test"]

    def test_yaml_config_file(self, monkeypatch, tmp_path):
        config_file = tmp_path / "pool.yaml"
        config_file.write_text(
            "pool:\n"
            "  price_points: '25,35'\n"
            "  replenish_policy: min_size\n"
            "scheduler:\n"
            "  keep_warm:\n"
            "    url: https://pool.example.com/health\n"
        )
        monkeypatch.setenv("EXPOOL_CONFIG_FILE", str(config_file))

        settings = get_settings()

        assert settings.pool.price_points == [25, 35]
        assert settings.pool.replenish_policy == "min_size"
        assert settings.keep_warm_url == "https://pool.example.com/health"

    def test_config_yaml_in_working_directory(self, tmp_path):
        (tmp_path / "config.yaml").write_text("server:\n  port: 4000\n")

        assert get_settings().server.port == 4000


class TestCreatorConfig:
    def test_credentials_required(self):
        assert not CreatorConfig().has_credentials
        assert CreatorConfig(
            brightdata_customer_id="c1",
            brightdata_zone="z1",
            brightdata_password="pw",
        ).has_credentials

    def test_webdriver_url(self):
        config = CreatorConfig(
            brightdata_customer_id="c1",
            brightdata_zone="z1",
            brightdata_password="pw",
        )

        assert config.webdriver_url == "https://brd-customer-c1-zone-z1:pw@brd.superproxy.io:9515"


class TestAttemptTimeout:
    def test_default_attempt_outlasts_browser_session(self):
        settings = Settings()

        assert (
            settings.replenish.attempt_timeout_seconds > settings.creator.session_timeout_seconds
        )

    def test_attempt_shorter_than_session_rejected(self):
        with pytest.raises(ValidationError, match="attempt_timeout_seconds"):
            Settings(
                replenish={"attempt_timeout_seconds": 200},
                creator={"session_timeout_seconds": 240},
            )

    def test_equal_timeouts_rejected(self):
        with pytest.raises(ValidationError):
            Settings(
                replenish={"attempt_timeout_seconds": 60},
                creator={"session_timeout_seconds": 60},
            )

    def test_env_override_checked(self, monkeypatch):
        monkeypatch.setenv("EXPOOL_REPLENISH__ATTEMPT_TIMEOUT_SECONDS", "30")

        with pytest.raises(ValidationError):
            Settings()
