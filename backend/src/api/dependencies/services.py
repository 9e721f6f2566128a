"""
Request-scoped access to the handles built in the application lifespan.

Components never reach for module-level singletons; routes pull the
handles stored on app.state through these dependencies.
"""

from typing import Optional

from fastapi import Header, Request

from src.entitlements.store import EntitlementStore
from src.integrations.portone.payment_client import PaymentGateway
from src.platform.errors import InternalError, ServiceUnavailableError
from src.platform.identity import IdentityProvider, extract_bearer_token
from src.services.payment_completion_service import PaymentIdGenerator
from src.services.playback_token_service import PlaybackTokenService


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Session token from 'Authorization: Bearer <token>', or None."""
    return extract_bearer_token(authorization)


def get_identity_provider(request: Request) -> IdentityProvider:
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise ServiceUnavailableError("Identity provider not configured")
    return provider


def get_entitlement_store(request: Request) -> EntitlementStore:
    store = getattr(request.app.state, "entitlement_store", None)
    if store is None:
        raise ServiceUnavailableError("Entitlement store not configured")
    return store


def get_payment_gateway(request: Request) -> PaymentGateway:
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise ServiceUnavailableError("Payment gateway not configured")
    return gateway


def get_payment_ids(request: Request) -> PaymentIdGenerator:
    return request.app.state.payment_ids


def get_playback_token_service(request: Request) -> PlaybackTokenService:
    """The minting service exists only if the signing key loaded at startup."""
    service = getattr(request.app.state, "playback_token_service", None)
    if service is None:
        raise InternalError("Failed to create token", details={"cause": "signing_key_unavailable"})
    return service
