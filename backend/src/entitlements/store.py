"""
Entitlement store: one row per viewer holding the has_paid flag.

The SQLAlchemy implementation writes with a single
INSERT ... ON CONFLICT (id) DO UPDATE statement so that concurrent
successful charges for the same user converge on has_paid=True without a
lost update. The merge is an OR of the stored and incoming flag, which
keeps the flag monotonic and makes the write commutative.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.entitlements.errors import EntitlementLookupError, EntitlementWriteError
from src.entitlements.models import EntitlementRecord
from src.models.profile import Profile

logger = logging.getLogger(__name__)


class EntitlementStore(ABC):
    """Durable per-user entitlement records."""

    @abstractmethod
    def get_entitlement(self, user_id: str) -> Optional[EntitlementRecord]:
        """
        Return the user's record, or None when no row exists.

        Raises:
            EntitlementLookupError: If the store cannot be read
        """

    @abstractmethod
    def upsert_entitlement(self, user_id: str, has_paid: bool) -> EntitlementRecord:
        """
        Insert or update the user's row and return the committed record.

        Idempotent on user_id. has_paid never moves from True to False.

        Raises:
            EntitlementWriteError: If the write is not committed
        """


def _upsert_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect_name}'")
    return insert


class SqlAlchemyEntitlementStore(EntitlementStore):
    """Entitlement store backed by the profiles table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_entitlement(self, user_id: str) -> Optional[EntitlementRecord]:
        try:
            with self._session_factory() as session:
                profile = session.get(Profile, user_id)
                if profile is None:
                    return None
                return _to_record(profile)
        except SQLAlchemyError as e:
            logger.error(
                "Entitlement lookup failed",
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            raise EntitlementLookupError(user_id, "database read failed", cause=e) from e

    def upsert_entitlement(self, user_id: str, has_paid: bool) -> EntitlementRecord:
        if not user_id:
            raise ValueError("user_id is required")

        try:
            with self._session_factory() as session:
                record = self._upsert(session, user_id, has_paid)
                session.commit()
        except (SQLAlchemyError, NotImplementedError) as e:
            logger.error(
                "Entitlement upsert failed",
                extra={"user_id": user_id, "error_type": type(e).__name__},
            )
            raise EntitlementWriteError(user_id, "database write failed", cause=e) from e

        logger.info(
            "Entitlement upserted",
            extra={"user_id": user_id, "has_paid": record.has_paid},
        )
        return record

    def _upsert(self, session: Session, user_id: str, has_paid: bool) -> EntitlementRecord:
        insert = _upsert_insert(session.get_bind().dialect.name)
        table = Profile.__table__

        stmt = insert(table).values(id=user_id, has_paid=has_paid)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={
                "has_paid": or_(table.c.has_paid, stmt.excluded.has_paid),
                "updated_at": func.now(),
            },
        )
        session.execute(stmt)

        row = session.execute(
            select(table.c.id, table.c.has_paid, table.c.updated_at).where(table.c.id == user_id)
        ).one()
        return EntitlementRecord(
            user_id=row.id,
            has_paid=bool(row.has_paid),
            updated_at=row.updated_at,
        )


def _to_record(profile: Profile) -> EntitlementRecord:
    return EntitlementRecord(
        user_id=profile.id,
        has_paid=bool(profile.has_paid),
        updated_at=profile.updated_at,
    )
