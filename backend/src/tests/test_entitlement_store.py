"""
Tests for SqlAlchemyEntitlementStore against SQLite.

Verifies:
- Missing row -> None
- upsert(True) then get -> has_paid=True (idempotent under repeats)
- has_paid never moves back to False
- Concurrent upserts for one user converge on a single True row
- Database errors surface as EntitlementLookupError / EntitlementWriteError
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from src.db_base import Base
from src.entitlements.errors import EntitlementLookupError, EntitlementWriteError
from src.entitlements.store import SqlAlchemyEntitlementStore
from src.models.profile import Profile


@pytest.fixture
def store(sqlite_session_factory):
    return SqlAlchemyEntitlementStore(sqlite_session_factory)


def _failing_session_factory():
    session = MagicMock()
    session.__enter__.return_value = session
    session.get.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    session.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))
    session.get_bind.return_value.dialect.name = "sqlite"
    return MagicMock(return_value=session)


class TestEntitlementReads:

    def test_missing_row_returns_none(self, store):
        assert store.get_entitlement("nobody") is None

    def test_existing_row(self, store, sqlite_session_factory):
        with sqlite_session_factory() as session:
            session.add(Profile(id="user-1", has_paid=False))
            session.commit()

        record = store.get_entitlement("user-1")

        assert record.user_id == "user-1"
        assert record.has_paid is False

    def test_read_failure_raises_lookup_error(self):
        store = SqlAlchemyEntitlementStore(_failing_session_factory())

        with pytest.raises(EntitlementLookupError) as exc_info:
            store.get_entitlement("user-1")

        assert exc_info.value.error_code == "ENTITLEMENT_LOOKUP_FAILED"


class TestEntitlementUpsert:

    def test_upsert_creates_row(self, store):
        record = store.upsert_entitlement("user-1", True)

        assert record.has_paid is True
        assert store.get_entitlement("user-1").has_paid is True

    def test_upsert_is_idempotent(self, store, sqlite_session_factory):
        store.upsert_entitlement("user-1", True)
        store.upsert_entitlement("user-1", True)

        with sqlite_session_factory() as session:
            count = session.scalar(select(func.count()).select_from(Profile))
        assert count == 1
        assert store.get_entitlement("user-1").has_paid is True

    def test_upsert_flips_existing_unpaid_row(self, store):
        store.upsert_entitlement("user-1", False)
        assert store.get_entitlement("user-1").has_paid is False

        store.upsert_entitlement("user-1", True)

        assert store.get_entitlement("user-1").has_paid is True

    def test_paid_is_never_downgraded(self, store):
        store.upsert_entitlement("user-1", True)

        record = store.upsert_entitlement("user-1", False)

        assert record.has_paid is True
        assert store.get_entitlement("user-1").has_paid is True

    def test_upsert_sets_timestamps(self, store):
        record = store.upsert_entitlement("user-1", True)

        assert record.updated_at is not None

    def test_empty_user_id_rejected(self, store):
        with pytest.raises(ValueError):
            store.upsert_entitlement("", True)

    def test_write_failure_raises_write_error(self):
        store = SqlAlchemyEntitlementStore(_failing_session_factory())

        with pytest.raises(EntitlementWriteError) as exc_info:
            store.upsert_entitlement("user-1", True)

        assert exc_info.value.error_code == "ENTITLEMENT_WRITE_FAILED"

    def test_unsupported_dialect_raises_write_error(self):
        factory = _failing_session_factory()
        factory.return_value.get_bind.return_value.dialect.name = "mysql"
        store = SqlAlchemyEntitlementStore(factory)

        with pytest.raises(EntitlementWriteError):
            store.upsert_entitlement("user-1", True)


class TestConcurrentUpserts:

    def test_concurrent_upserts_converge(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'entitlements.db'}",
            connect_args={"timeout": 30, "check_same_thread": False},
        )
        Base.metadata.create_all(engine, tables=[Profile.__table__])
        store = SqlAlchemyEntitlementStore(sessionmaker(bind=engine, expire_on_commit=False))

        try:
            with ThreadPoolExecutor(max_workers=8) as pool:
                results = list(pool.map(lambda _: store.upsert_entitlement("user-1", True), range(16)))

            assert all(record.has_paid for record in results)
            assert store.get_entitlement("user-1").has_paid is True
            with engine.connect() as conn:
                count = conn.scalar(select(func.count()).select_from(Profile.__table__))
            assert count == 1
        finally:
            engine.dispose()
