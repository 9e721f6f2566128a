"""
Playback token signing key.

Cloudflare Stream hands out the signing key as a base64-encoded PEM
(PKCS#1 "RSA PRIVATE KEY"). The key is decoded once at process start and
kept in memory as an immutable handle shared by every mint call. It is
never written anywhere by this service.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

logger = logging.getLogger(__name__)


class SigningKeyError(Exception):
    """Raised when the signing key cannot be loaded."""
    pass


@dataclass(frozen=True, repr=False)
class SigningKey:
    """RSA private key plus the key id Cloudflare knows it by."""
    key_id: str
    private_key: RSAPrivateKey

    @classmethod
    def from_pem(cls, key_id: str, pem: bytes) -> "SigningKey":
        if not key_id:
            raise SigningKeyError("Signing key id is required")
        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError) as e:
            raise SigningKeyError("Signing key is not a valid unencrypted PEM private key") from e

        if not isinstance(key, RSAPrivateKey):
            raise SigningKeyError("Signing key must be an RSA private key")

        return cls(key_id=key_id, private_key=key)

    @classmethod
    def from_base64_pem(cls, key_id: str, encoded: str) -> "SigningKey":
        if not encoded:
            raise SigningKeyError("Signing key material is empty")
        try:
            pem = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise SigningKeyError("Signing key is not valid base64") from e
        return cls.from_pem(key_id, pem)

    @classmethod
    def from_env(cls) -> "SigningKey":
        """
        Load from CF_STREAM_KEY_ID and CF_STREAM_SIGNING_KEY.

        Raises:
            SigningKeyError: If either variable is missing or the key is unusable
        """
        key_id = os.getenv("CF_STREAM_KEY_ID")
        encoded = os.getenv("CF_STREAM_SIGNING_KEY")
        if not key_id or not encoded:
            raise SigningKeyError("CF_STREAM_KEY_ID and CF_STREAM_SIGNING_KEY environment variables are required")

        signing_key = cls.from_base64_pem(key_id, encoded)
        logger.info(
            "Playback signing key loaded",
            extra={"key_id": key_id, "key_size": signing_key.private_key.key_size},
        )
        return signing_key

    @property
    def public_key(self) -> RSAPublicKey:
        return self.private_key.public_key()

    def __repr__(self) -> str:
        return f"SigningKey(key_id={self.key_id!r})"
