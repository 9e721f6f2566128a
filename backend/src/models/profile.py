"""
Viewer profile model holding the one-time-purchase entitlement flag.

One row per authenticated user, keyed by the identity provider's user id.

INVARIANTS:
- At most one row per user (id is the primary key)
- Rows are never deleted
- has_paid only ever moves from False to True; there is no refund flow
- Written exclusively through SqlAlchemyEntitlementStore.upsert_entitlement
"""

from sqlalchemy import Boolean, Column, String, false

from src.db_base import Base
from src.models.base import TimestampMixin


class Profile(Base, TimestampMixin):
    """Entitlement row for a single viewer."""

    __tablename__ = "profiles"

    id = Column(
        String(64),
        primary_key=True,
        comment="User id issued by the identity provider",
    )

    has_paid = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        comment="True once a charge for premium access has completed",
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} has_paid={self.has_paid}>"
