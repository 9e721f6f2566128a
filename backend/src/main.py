"""
FastAPI application for the course video paywall.

Collaborator handles (identity provider, entitlement store, payment gateway)
and the playback signing key are built once in the lifespan and stored on
app.state. Handles passed to create_app() are used as-is, which is how tests
substitute fakes.

Run with:
    uvicorn src.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from src.api.routes import health, payments, video_token, viewer
from src.config.settings import AppSettings
from src.database.session import get_session_factory
from src.entitlements.store import EntitlementStore, SqlAlchemyEntitlementStore
from src.integrations.portone.payment_client import PaymentGateway, PortOneClient
from src.monitoring.payment_alerts import emit_signing_failure
from src.platform.errors import register_error_handlers
from src.platform.health import get_health_checker
from src.platform.identity import IdentityProvider
from src.platform.supabase_auth_client import SupabaseAuthClient
from src.services.payment_completion_service import PaymentIdGenerator
from src.services.playback_token_service import PlaybackTokenService
from src.services.signing_key import SigningKey, SigningKeyError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _load_signing_key(settings: AppSettings) -> Optional[SigningKey]:
    """Load the playback key once. Failure disables minting, not the process."""
    if settings.stream is None:
        return None
    try:
        return SigningKey.from_env()
    except SigningKeyError as e:
        emit_signing_failure(settings.stream.key_id, str(e))
        return None


def _build_token_service(app: FastAPI, settings: AppSettings) -> Optional[PlaybackTokenService]:
    state = app.state
    handles = (state.identity_provider, state.entitlement_store, state.signing_key, settings.stream)
    if any(handle is None for handle in handles):
        logger.warning("Playback token minting disabled; collaborators not configured")
        return None
    try:
        return PlaybackTokenService(
            state.identity_provider,
            state.entitlement_store,
            state.signing_key,
            settings.stream,
        )
    except ValueError as e:
        emit_signing_failure(settings.stream.key_id, str(e))
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: AppSettings = app.state.settings
    get_health_checker().log_config_status()

    owned_identity: Optional[SupabaseAuthClient] = None
    owned_gateway: Optional[PortOneClient] = None

    if app.state.identity_provider is None and settings.supabase is not None:
        owned_identity = SupabaseAuthClient(settings.supabase)
        app.state.identity_provider = owned_identity

    if app.state.entitlement_store is None and settings.database_url:
        app.state.entitlement_store = SqlAlchemyEntitlementStore(get_session_factory())

    if app.state.payment_gateway is None and settings.portone is not None:
        owned_gateway = PortOneClient(settings.portone)
        app.state.payment_gateway = owned_gateway

    if app.state.signing_key is None:
        app.state.signing_key = _load_signing_key(settings)

    app.state.playback_token_service = _build_token_service(app, settings)

    logger.info("Paywall API started", extra={
        "identity_provider": app.state.identity_provider is not None,
        "entitlement_store": app.state.entitlement_store is not None,
        "payment_gateway": app.state.payment_gateway is not None,
        "minting_enabled": app.state.playback_token_service is not None,
    })

    try:
        yield
    finally:
        if owned_gateway is not None:
            await owned_gateway.close()
        if owned_identity is not None:
            owned_identity.close()


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    identity_provider: Optional[IdentityProvider] = None,
    entitlement_store: Optional[EntitlementStore] = None,
    payment_gateway: Optional[PaymentGateway] = None,
    signing_key: Optional[SigningKey] = None,
) -> FastAPI:
    """Build the application. Missing handles are created from settings at startup."""
    settings = settings or AppSettings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Course Paywall API", lifespan=lifespan)
    app.state.settings = settings
    app.state.identity_provider = identity_provider
    app.state.entitlement_store = entitlement_store
    app.state.payment_gateway = payment_gateway
    app.state.signing_key = signing_key
    app.state.payment_ids = PaymentIdGenerator()
    app.state.playback_token_service = None

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(video_token.router)
    app.include_router(viewer.router)
    app.include_router(payments.router)

    return app


app = create_app()
