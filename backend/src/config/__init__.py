"""Configuration module for backend services."""

from src.config.settings import (
    PLAYBACK_TOKEN_LIFETIME_SECONDS,
    AppSettings,
    PortOneConfig,
    StreamTokenConfig,
    SupabaseConfig,
)

__all__ = [
    "PLAYBACK_TOKEN_LIFETIME_SECONDS",
    "AppSettings",
    "PortOneConfig",
    "StreamTokenConfig",
    "SupabaseConfig",
]
