"""
Shared pytest fixtures for the paywall tests.

Provides:
- An RSA key generated once per session and a SigningKey wrapping it
- In-memory fakes for the identity provider, entitlement store and gateway
- A SQLite-backed session factory with the profiles table created
"""

import base64
from typing import Dict, List, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.settings import AppSettings, StreamTokenConfig
from src.db_base import Base
from src.entitlements.errors import EntitlementLookupError, EntitlementWriteError
from src.entitlements.models import EntitlementRecord
from src.entitlements.store import EntitlementStore
from src.integrations.portone.payment_client import ChargeRequest, ChargeResult, PaymentGateway
from src.models.profile import Profile
from src.platform.identity import Identity, IdentityProvider
from src.services.signing_key import SigningKey

TEST_KEY_ID = "8f1d5c0a2b3e4f60718293a4b5c6d7e8"
TEST_SUBDOMAIN = "customer-abc123.cloudflarestream.com"

PAID_TOKEN = "session-paid"
UNPAID_TOKEN = "session-unpaid"
NEW_TOKEN = "session-new"

PAID_USER = Identity(user_id="user-paid", email="paid@example.com")
UNPAID_USER = Identity(user_id="user-unpaid", email="unpaid@example.com")
NEW_USER = Identity(user_id="user-new", email="new@example.com")


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeIdentityProvider(IdentityProvider):
    """Maps known session tokens to identities; anything else is invalid."""

    def __init__(self, sessions: Optional[Dict[str, Identity]] = None):
        self.sessions = dict(sessions or {})
        self.error: Optional[Exception] = None
        self.calls: List[Optional[str]] = []

    def verify(self, bearer_token):
        self.calls.append(bearer_token)
        if self.error is not None:
            raise self.error
        return self.sessions.get(bearer_token)


class FakeEntitlementStore(EntitlementStore):
    """Dict-backed store with switchable read/write failures."""

    def __init__(self, records: Optional[Dict[str, bool]] = None):
        self.records = dict(records or {})
        self.fail_reads = False
        self.fail_writes = False
        self.read_count = 0
        self.upserts: List[tuple] = []

    def get_entitlement(self, user_id):
        self.read_count += 1
        if self.fail_reads:
            raise EntitlementLookupError(user_id, "simulated outage")
        if user_id not in self.records:
            return None
        return EntitlementRecord(user_id=user_id, has_paid=self.records[user_id])

    def upsert_entitlement(self, user_id, has_paid):
        self.upserts.append((user_id, has_paid))
        if self.fail_writes:
            raise EntitlementWriteError(user_id, "simulated outage")
        self.records[user_id] = self.records.get(user_id, False) or has_paid
        return EntitlementRecord(user_id=user_id, has_paid=self.records[user_id])


class FakeGateway(PaymentGateway):
    """Gateway that returns a canned result (or raises) for every charge."""

    def __init__(self, result: Optional[ChargeResult] = None):
        self.result = result or ChargeResult(transaction_id="txn-1")
        self.error: Optional[Exception] = None
        self.prepared: List[ChargeRequest] = []
        self.charged: List[ChargeRequest] = []

    async def prepare(self, request):
        self.prepared.append(request)

    async def charge(self, request):
        self.charged.append(request)
        if self.error is not None:
            raise self.error
        return self.result


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def signing_key(rsa_private_key):
    return SigningKey(key_id=TEST_KEY_ID, private_key=rsa_private_key)


@pytest.fixture
def encoded_signing_key(rsa_private_key):
    """Key as Cloudflare hands it out: base64 of a PKCS#1 PEM."""
    pem = rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return base64.b64encode(pem).decode("ascii")


@pytest.fixture
def stream_config():
    return StreamTokenConfig(key_id=TEST_KEY_ID, customer_subdomain=TEST_SUBDOMAIN)


@pytest.fixture
def app_settings(stream_config):
    return AppSettings(stream=stream_config)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider({
        PAID_TOKEN: PAID_USER,
        UNPAID_TOKEN: UNPAID_USER,
        NEW_TOKEN: NEW_USER,
    })


@pytest.fixture
def entitlement_store():
    return FakeEntitlementStore({
        PAID_USER.user_id: True,
        UNPAID_USER.user_id: False,
    })


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sqlite_session_factory():
    """In-memory SQLite shared across threads (asyncio.to_thread callers)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine, tables=[Profile.__table__])
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()
