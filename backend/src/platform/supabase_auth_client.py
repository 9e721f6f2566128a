"""
Supabase Auth client used as the identity/session provider.

Handles:
- Resolving a viewer's bearer session token into a user id and email
- Distinguishing an invalid session (None) from a provider outage (error)

SECURITY:
- Session tokens are never logged
- The service role key is sent only to the configured Supabase project
"""

import logging
from typing import Optional

import httpx

from src.config.settings import SupabaseConfig
from src.platform.identity import BEARER_PREFIX, Identity, IdentityProvider

logger = logging.getLogger(__name__)


class SupabaseAuthError(Exception):
    """Raised when the identity provider cannot answer."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SupabaseAuthClient(IdentityProvider):
    """
    Client for the Supabase Auth user endpoint.

    One instance is created at startup and shared; httpx.Client is safe to
    use from the worker threads that serve concurrent requests.
    """

    def __init__(self, config: SupabaseConfig, http_client: Optional[httpx.Client] = None):
        """
        Initialize client with Supabase configuration.

        Args:
            config: SupabaseConfig with project URL and service role key
            http_client: Optional preconfigured httpx client (tests)
        """
        self.config = config
        self._http_client = http_client or httpx.Client(timeout=10.0)

    def verify(self, bearer_token: Optional[str]) -> Optional[Identity]:
        if not bearer_token:
            return None

        try:
            response = self._http_client.get(
                f"{self.config.url}/auth/v1/user",
                headers={
                    "apikey": self.config.service_role_key,
                    "Authorization": f"{BEARER_PREFIX}{bearer_token}",
                },
            )
        except httpx.RequestError as e:
            logger.error(
                "Supabase auth request error",
                extra={"error_type": type(e).__name__},
            )
            raise SupabaseAuthError(f"Request failed: {type(e).__name__}") from e

        if response.status_code in (401, 403, 404):
            logger.info(
                "Session token rejected by Supabase",
                extra={"status_code": response.status_code},
            )
            return None

        if response.status_code != 200:
            logger.error(
                "Supabase auth HTTP error",
                extra={"status_code": response.status_code},
            )
            raise SupabaseAuthError(
                f"Supabase auth error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SupabaseAuthError("Malformed user response from Supabase") from e

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            logger.warning("Supabase user response missing id")
            return None

        return Identity(user_id=str(user_id), email=data.get("email"))

    def close(self):
        """Close the HTTP client."""
        self._http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
