"""
Runtime configuration loaded from environment variables.

Each collaborator gets its own small config object with a from_env()
constructor. Missing values are logged by name only; secret values are
never logged.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# Playback tokens are valid for exactly one hour from mint time.
PLAYBACK_TOKEN_LIFETIME_SECONDS = 3600

PORTONE_API_BASE = "https://api.portone.io"


def _missing(names: list[str]) -> list[str]:
    return [name for name in names if not os.getenv(name)]


@dataclass
class SupabaseConfig:
    """Identity provider (Supabase Auth) configuration."""
    url: str
    service_role_key: str

    @classmethod
    def from_env(cls) -> Optional["SupabaseConfig"]:
        missing = _missing(["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])
        if missing:
            logger.warning(
                "Supabase credentials not fully configured",
                extra={"missing_vars": missing},
            )
            return None

        return cls(
            url=os.environ["SUPABASE_URL"].rstrip("/"),
            service_role_key=os.environ["SUPABASE_SERVICE_ROLE_KEY"],
        )


class StreamTokenConfig(BaseModel):
    """Configuration for Cloudflare Stream playback token signing."""
    key_id: str
    customer_subdomain: str
    algorithm: str = "RS256"
    lifetime_seconds: int = PLAYBACK_TOKEN_LIFETIME_SECONDS

    @field_validator("key_id", "customer_subdomain")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("lifetime_seconds")
    @classmethod
    def _fixed_lifetime(cls, value: int) -> int:
        if value != PLAYBACK_TOKEN_LIFETIME_SECONDS:
            raise ValueError(
                f"playback tokens must live exactly {PLAYBACK_TOKEN_LIFETIME_SECONDS} seconds"
            )
        return value

    @classmethod
    def from_env(cls) -> Optional["StreamTokenConfig"]:
        missing = _missing(["CF_STREAM_KEY_ID", "CF_STREAM_CUSTOMER_SUBDOMAIN"])
        if missing:
            logger.warning(
                "Cloudflare Stream token settings not configured",
                extra={"missing_vars": missing},
            )
            return None

        return cls(
            key_id=os.environ["CF_STREAM_KEY_ID"],
            customer_subdomain=os.environ["CF_STREAM_CUSTOMER_SUBDOMAIN"],
        )


@dataclass
class PortOneConfig:
    """Payment gateway (PortOne V2) configuration."""
    api_secret: str
    store_id: str
    channel_key: str
    api_base_url: str = PORTONE_API_BASE
    easy_pay_provider: str = "KAKAOPAY"
    # How long a hosted checkout may stay open before it counts as abandoned.
    checkout_window_seconds: float = 600.0
    poll_interval_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> Optional["PortOneConfig"]:
        missing = _missing(["PORTONE_API_SECRET", "PORTONE_STORE_ID", "PORTONE_CHANNEL_KEY"])
        if missing:
            logger.warning(
                "PortOne credentials not fully configured",
                extra={"missing_vars": missing},
            )
            return None

        return cls(
            api_secret=os.environ["PORTONE_API_SECRET"],
            store_id=os.environ["PORTONE_STORE_ID"],
            channel_key=os.environ["PORTONE_CHANNEL_KEY"],
            api_base_url=os.getenv("PORTONE_API_URL", PORTONE_API_BASE).rstrip("/"),
            easy_pay_provider=os.getenv("PORTONE_EASY_PAY_PROVIDER", "KAKAOPAY"),
            checkout_window_seconds=float(os.getenv("PORTONE_CHECKOUT_WINDOW_SECONDS", "600")),
        )


@dataclass
class AppSettings:
    """Aggregate settings for the API process."""
    supabase: Optional[SupabaseConfig] = None
    stream: Optional[StreamTokenConfig] = None
    portone: Optional[PortOneConfig] = None
    database_url: Optional[str] = None
    log_level: str = "INFO"
    missing: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "AppSettings":
        settings = cls(
            supabase=SupabaseConfig.from_env(),
            stream=StreamTokenConfig.from_env(),
            portone=PortOneConfig.from_env(),
            database_url=os.getenv("DATABASE_URL"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        settings.missing = _missing(REQUIRED_ENV_VARS)
        return settings


REQUIRED_ENV_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "DATABASE_URL",
    "CF_STREAM_KEY_ID",
    "CF_STREAM_SIGNING_KEY",
    "CF_STREAM_CUSTOMER_SUBDOMAIN",
]

OPTIONAL_ENV_VARS = [
    "PORTONE_API_SECRET",
    "PORTONE_STORE_ID",
    "PORTONE_CHANNEL_KEY",
    "LOG_LEVEL",
]
