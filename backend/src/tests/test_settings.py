"""Tests for environment-driven configuration."""

import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.config.settings import (
    PLAYBACK_TOKEN_LIFETIME_SECONDS,
    PORTONE_API_BASE,
    AppSettings,
    PortOneConfig,
    StreamTokenConfig,
    SupabaseConfig,
)

ALL_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "DATABASE_URL",
    "CF_STREAM_KEY_ID",
    "CF_STREAM_SIGNING_KEY",
    "CF_STREAM_CUSTOMER_SUBDOMAIN",
    "PORTONE_API_SECRET",
    "PORTONE_STORE_ID",
    "PORTONE_CHANNEL_KEY",
    "PORTONE_API_URL",
    "PORTONE_EASY_PAY_PROVIDER",
    "PORTONE_CHECKOUT_WINDOW_SECONDS",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ALL_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestStreamTokenConfig:

    def test_lifetime_is_one_hour(self):
        config = StreamTokenConfig(key_id="kid", customer_subdomain="customer-x.cloudflarestream.com")

        assert config.lifetime_seconds == PLAYBACK_TOKEN_LIFETIME_SECONDS == 3600
        assert config.algorithm == "RS256"

    def test_other_lifetimes_rejected(self):
        with pytest.raises(PydanticValidationError):
            StreamTokenConfig(key_id="kid", customer_subdomain="x", lifetime_seconds=7200)

    def test_blank_key_id_rejected(self):
        with pytest.raises(PydanticValidationError):
            StreamTokenConfig(key_id="  ", customer_subdomain="x")

    def test_from_env(self, clean_env):
        clean_env.setenv("CF_STREAM_KEY_ID", "kid")
        clean_env.setenv("CF_STREAM_CUSTOMER_SUBDOMAIN", "customer-x.cloudflarestream.com")

        config = StreamTokenConfig.from_env()

        assert config.key_id == "kid"

    def test_from_env_missing(self, clean_env, caplog):
        with caplog.at_level(logging.WARNING):
            assert StreamTokenConfig.from_env() is None

        assert "CF_STREAM_KEY_ID" in str([getattr(r, "missing_vars", "") for r in caplog.records])


class TestCollaboratorConfigs:

    def test_supabase_from_env_strips_trailing_slash(self, clean_env):
        clean_env.setenv("SUPABASE_URL", "https://project.supabase.co/")
        clean_env.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role")

        config = SupabaseConfig.from_env()

        assert config.url == "https://project.supabase.co"

    def test_supabase_missing(self, clean_env):
        assert SupabaseConfig.from_env() is None

    def test_portone_defaults(self, clean_env):
        clean_env.setenv("PORTONE_API_SECRET", "secret")
        clean_env.setenv("PORTONE_STORE_ID", "store")
        clean_env.setenv("PORTONE_CHANNEL_KEY", "channel")

        config = PortOneConfig.from_env()

        assert config.api_base_url == PORTONE_API_BASE
        assert config.easy_pay_provider == "KAKAOPAY"
        assert config.checkout_window_seconds == 600.0

    def test_portone_overrides(self, clean_env):
        clean_env.setenv("PORTONE_API_SECRET", "secret")
        clean_env.setenv("PORTONE_STORE_ID", "store")
        clean_env.setenv("PORTONE_CHANNEL_KEY", "channel")
        clean_env.setenv("PORTONE_EASY_PAY_PROVIDER", "TOSSPAY")
        clean_env.setenv("PORTONE_CHECKOUT_WINDOW_SECONDS", "120")

        config = PortOneConfig.from_env()

        assert config.easy_pay_provider == "TOSSPAY"
        assert config.checkout_window_seconds == 120.0


class TestAppSettings:

    def test_reports_missing_required_vars(self, clean_env):
        settings = AppSettings.from_env()

        assert settings.stream is None
        assert settings.supabase is None
        assert "CF_STREAM_SIGNING_KEY" in settings.missing
        assert settings.log_level == "INFO"

    def test_log_level_normalized(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "debug")

        assert AppSettings.from_env().log_level == "DEBUG"
