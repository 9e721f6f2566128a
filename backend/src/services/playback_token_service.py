"""
Signed playback tokens for Cloudflare Stream.

Mints short-lived RS256 tokens that let an entitled viewer play one video.

Security Requirements:
- Token lifetime: exactly 1 hour from mint time
- Entitlement is re-read from the store on every call (no caching)
- Token subject is always the requested video id
- Signing key is loaded once at startup and only read afterwards
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import jwt
from pydantic import BaseModel

from src.config.settings import StreamTokenConfig
from src.entitlements.errors import EntitlementLookupError
from src.entitlements.store import EntitlementStore
from src.monitoring.payment_alerts import emit_signing_failure
from src.platform.errors import (
    AuthenticationError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.platform.identity import Identity, IdentityProvider
from src.services.signing_key import SigningKey

logger = logging.getLogger(__name__)


class PlaybackTokenPayload(BaseModel):
    """Decoded playback token claims."""
    sub: str  # video id
    kid: str
    iat: int
    exp: int


class PlaybackTokenResult(BaseModel):
    """Result of playback token minting."""
    token: str
    video_id: str
    customer_subdomain: str
    expires_in: int
    issued_at: datetime
    expires_at: datetime

    def to_response(self) -> dict:
        """Wire shape returned by POST /api/video/token."""
        return {
            "token": self.token,
            "videoId": self.video_id,
            "customerSubdomain": self.customer_subdomain,
            "expiresIn": self.expires_in,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlaybackTokenService:
    """
    Service for minting Cloudflare Stream signed playback tokens.

    Stateless between calls; safe to share across concurrent requests.
    Tokens include:
    - Video scoping (sub)
    - Signing key id (kid claim and JOSE header)
    - Issue and expiry times (iat, exp)
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        entitlement_store: EntitlementStore,
        signing_key: SigningKey,
        config: StreamTokenConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize playback token service.

        Args:
            identity_provider: Resolves bearer session tokens
            entitlement_store: Source of truth for has_paid
            signing_key: RSA key loaded at startup
            config: Key id, customer subdomain and lifetime
            clock: Returns the current aware UTC time (tests)
        """
        if signing_key.key_id != config.key_id:
            raise ValueError("Signing key id does not match configured key id")

        self._identity_provider = identity_provider
        self._entitlement_store = entitlement_store
        self._signing_key = signing_key
        self.config = config
        self._clock = clock or _utcnow

    def mint(self, video_id: Optional[str], bearer_token: Optional[str]) -> PlaybackTokenResult:
        """
        Mint a playback token for one video.

        Checks run in order: session, entitlement, then request body.

        Raises:
            AuthenticationError: Missing or invalid session (401)
            NotFoundError: No entitlement record for the user (404)
            PermissionDeniedError: Record exists but has_paid is False (403)
            ValidationError: Empty video id (400)
            InternalError: Store read or signing failed (500)
        """
        identity = self._authenticate(bearer_token)
        self._require_entitlement(identity)

        if not isinstance(video_id, str) or not video_id.strip():
            raise ValidationError("videoId is required")

        return self._sign(video_id, identity)

    def _authenticate(self, bearer_token: Optional[str]) -> Identity:
        if not bearer_token:
            raise AuthenticationError("Authentication required")
        try:
            identity = self._identity_provider.verify(bearer_token)
        except Exception:
            logger.warning("Identity provider failed during token mint", exc_info=True)
            identity = None
        if identity is None:
            raise AuthenticationError("Invalid session")
        return identity

    def _require_entitlement(self, identity: Identity) -> None:
        try:
            record = self._entitlement_store.get_entitlement(identity.user_id)
        except EntitlementLookupError as e:
            raise InternalError(
                "Failed to create token",
                details={"user_id": identity.user_id, "cause": e.error_code},
            ) from e

        if record is None:
            raise NotFoundError("Profile")
        if not record.has_paid:
            logger.info(
                "Playback token denied - not paid",
                extra={"user_id": identity.user_id},
            )
            raise PermissionDeniedError("Payment required")

    def _sign(self, video_id: str, identity: Identity) -> PlaybackTokenResult:
        now = self._clock()
        iat = int(now.timestamp())
        exp = iat + self.config.lifetime_seconds

        payload = {
            "sub": video_id,
            "kid": self._signing_key.key_id,
            "iat": iat,
            "exp": exp,
        }

        try:
            token = jwt.encode(
                payload,
                self._signing_key.private_key,
                algorithm=self.config.algorithm,
                headers={"kid": self._signing_key.key_id},
            )
        except Exception as e:
            emit_signing_failure(self._signing_key.key_id, type(e).__name__)
            raise InternalError("Failed to create token") from e

        logger.info(
            "Generated playback token",
            extra={
                "user_id": identity.user_id,
                "video_id": video_id,
                "key_id": self._signing_key.key_id,
                "expires_at": exp,
            }
        )

        return PlaybackTokenResult(
            token=token,
            video_id=video_id,
            customer_subdomain=self.config.customer_subdomain,
            expires_in=self.config.lifetime_seconds,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )

    def verify_token(self, token: str, verify_exp: bool = True) -> PlaybackTokenPayload:
        """
        Decode a playback token with the public half of the signing key.

        Raises:
            jwt.InvalidTokenError: If the signature, key id or expiry is wrong
        """
        header = jwt.get_unverified_header(token)
        if header.get("kid") != self._signing_key.key_id:
            raise jwt.InvalidTokenError("Unknown signing key id")

        payload = jwt.decode(
            token,
            self._signing_key.public_key,
            algorithms=[self.config.algorithm],
            options={"verify_exp": verify_exp},
        )
        return PlaybackTokenPayload(**payload)
