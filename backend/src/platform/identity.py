"""
Identity provider port.

The identity provider authenticates a bearer session token and yields a
stable user id and email. Components receive an IdentityProvider handle at
construction; the concrete Supabase client lives in supabase_auth_client.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    """Authenticated viewer as reported by the identity provider."""
    user_id: str
    email: Optional[str] = None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an 'Authorization: Bearer <token>' header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class IdentityProvider(ABC):
    """Authenticates bearer session tokens."""

    @abstractmethod
    def verify(self, bearer_token: Optional[str]) -> Optional[Identity]:
        """
        Resolve a session token to an identity.

        Returns:
            Identity, or None when the token is missing, expired or invalid

        Raises:
            SupabaseAuthError: If the provider is unreachable or misbehaves
        """
