"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": '{"kty": "EC"}',
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "CURRENCY": "usd",
            "DELIVERY_WEEKDAY": "2",
            "DELIVERY_HOUR": "10",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.host == "127.0.0.1"
            assert settings.port == 9000
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.currency == "usd"
            assert settings.delivery_weekday == 2
            assert settings.delivery_hour == 10

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, http://example.com , http://test.com",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com", "http://test.com"]

    def test_settings_is_production_property(self) -> None:
        """Test the is_production property."""
        env_vars = {**REQUIRED_ENV, "APP_ENV": "production"}

        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().is_production is True

        env_vars["APP_ENV"] = "development"
        with patch.dict(os.environ, env_vars, clear=False):
            assert Settings().is_production is False

    def test_settings_stripe_test_mode(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_test_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is True

        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": "sk_live_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is False

    def test_settings_default_values(self) -> None:
        """Test that default values are applied correctly."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.app_name == "tudo-fresco-backend"
            assert settings.app_env == "development"
            assert settings.debug is False
            assert settings.port == 8080
            assert settings.currency == "brl"
            assert settings.subscription_interval == "month"
            assert settings.delivery_weekday == 0
            assert settings.delivery_hour == 8
            assert settings.delivery_timezone == "America/Sao_Paulo"
            assert settings.low_stock_threshold == 20
            assert settings.critical_stock_threshold == 5

    def test_critical_threshold_cannot_exceed_low(self) -> None:
        env_vars = {**REQUIRED_ENV, "LOW_STOCK_THRESHOLD": "5", "CRITICAL_STOCK_THRESHOLD": "10"}

        with patch.dict(os.environ, env_vars, clear=False):
            with pytest.raises(ValidationError, match="critical_stock_threshold"):
                Settings()

    def test_delivery_weekday_range(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "DELIVERY_WEEKDAY": "7"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_validation_error_missing_required(self) -> None:
        """Test that validation errors are raised for missing required fields."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            error_fields = [e["loc"][0] for e in exc_info.value.errors()]
            assert "supabase_url" in error_fields
            assert "supabase_signing_key_jwk" in error_fields


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_singleton(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert isinstance(settings1, Settings)
        assert settings1 is settings2

        get_settings.cache_clear()

    def test_get_settings_cache_can_be_cleared(self) -> None:
        """Test that cache can be cleared to reload settings."""
        get_settings.cache_clear()

        settings1 = get_settings()
        get_settings.cache_clear()
        settings2 = get_settings()

        assert settings1 is not settings2

        get_settings.cache_clear()
