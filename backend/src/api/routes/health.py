"""
Liveness, component health and schema readiness endpoints.

/health stays 200 while the process is up; the other two return 503 when
something the paywall depends on is missing.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.database.session import get_session_factory
from src.platform.db_readiness import REQUIRED_ENTITLEMENT_TABLES, check_required_tables
from src.platform.health import get_health_checker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _status_code(ok: bool) -> int:
    return status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/details")
def health_details(request: Request):
    """Database, environment and signing-key checks. No secret values."""
    # A loaded key whose id disagrees with the config leaves minting disabled.
    minting_enabled = getattr(request.app.state, "playback_token_service", None) is not None
    report = get_health_checker().get_health_status(minting_enabled)
    return JSONResponse(status_code=_status_code(report["status"] == "ok"), content=report)


def _not_ready(database: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "checks": {"database": database}},
    )


@router.get("/api/health/readiness")
def readiness():
    """Ready once the database is reachable and the entitlement tables exist."""
    try:
        session_factory = get_session_factory()
    except RuntimeError as e:
        # DATABASE_URL not configured
        logger.warning("Readiness check without database", extra={"error": str(e)})
        return _not_ready("not_configured")

    try:
        with session_factory() as db:
            result = check_required_tables(db, REQUIRED_ENTITLEMENT_TABLES)
    except SQLAlchemyError:
        return _not_ready("unreachable")

    return JSONResponse(
        status_code=_status_code(result.ready),
        content={
            "status": "ready" if result.ready else "not_ready",
            "checks": {
                "database": "ok",
                "entitlement_tables": {
                    "required": result.checked_tables,
                    "missing": result.missing_tables,
                },
            },
        },
    )
