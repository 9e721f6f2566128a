"""
Component health for the paywall API.

Each check returns {"status": "ok" | "error", "message": ...}. Values of
environment variables are never read into a report or a log line; only
their presence is.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.config.settings import OPTIONAL_ENV_VARS, REQUIRED_ENV_VARS
from src.database.session import get_engine

logger = logging.getLogger(__name__)

SERVICE_NAME = "course-paywall-api"


def _check(ok: bool, message: str, **extra: Any) -> Dict[str, Any]:
    return {"status": "ok" if ok else "error", "message": message, **extra}


class HealthChecker:
    """Runs the database, environment and signing-key checks."""

    def __init__(self, engine_provider: Optional[Callable[[], Engine]] = None):
        self._engine_provider = engine_provider or get_engine

    def check_database(self) -> Dict[str, Any]:
        try:
            engine = self._engine_provider()
        except RuntimeError as e:
            # DATABASE_URL not configured
            return _check(False, str(e))

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
        except SQLAlchemyError as e:
            logger.error("Database connection failed", extra={"error_type": type(e).__name__})
            return _check(False, "Database connection failed")
        return _check(True, "Database connection successful")

    def check_environment_variables(self) -> Dict[str, Any]:
        missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
        present = [name for name in REQUIRED_ENV_VARS + OPTIONAL_ENV_VARS if os.getenv(name)]
        return _check(
            not missing,
            f"{len(present)} vars present, {len(missing)} missing",
            present=present,
            missing=missing,
        )

    def check_signing_key(self, loaded: bool) -> Dict[str, Any]:
        if loaded:
            return _check(True, "Signing key loaded")
        return _check(False, "Signing key not usable; token minting disabled")

    def get_health_status(self, signing_key_loaded: bool) -> Dict[str, Any]:
        """All checks plus an overall status that is 'degraded' if any failed."""
        checks = {
            "database": self.check_database(),
            "environment": self.check_environment_variables(),
            "signing_key": self.check_signing_key(signing_key_loaded),
        }
        healthy = all(check["status"] == "ok" for check in checks.values())
        return {
            "status": "ok" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "checks": checks,
        }

    def log_config_status(self) -> None:
        """Startup summary of which variables are set (names only)."""
        env = self.check_environment_variables()
        logger.info("Configuration status", extra={
            "required_vars_missing": env["missing"],
            "optional_vars_present": [name for name in env["present"] if name in OPTIONAL_ENV_VARS],
        })
        if env["missing"]:
            logger.warning("Missing required environment variables", extra={
                "missing_vars": env["missing"],
            })


_health_checker: Optional[HealthChecker] = None


def get_health_checker() -> HealthChecker:
    global _health_checker
    if _health_checker is None:
        _health_checker = HealthChecker()
    return _health_checker
