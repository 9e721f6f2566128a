"""
Entitlement domain types.

ViewerState is a tagged variant over ViewerStatus. Only the classmethod
constructors should be used to build one, so that every state carries
exactly the fields that make sense for its tag.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from src.platform.identity import Identity


@dataclass(frozen=True)
class EntitlementRecord:
    """Snapshot of a viewer's row in the entitlement store."""
    user_id: str
    has_paid: bool
    updated_at: Optional[datetime] = None


class ViewerStatus(str, Enum):
    """Resolution states for a viewer of premium content."""
    LOADING = "loading"
    NOT_LOGGED_IN = "not_logged_in"
    NOT_PAID = "not_paid"
    PAID = "paid"


class NotPaidReason(str, Enum):
    """Why a logged-in viewer resolved to NOT_PAID."""
    NO_RECORD = "no_record"          # no entitlement row yet
    NOT_PAID = "not_paid"            # row exists, has_paid is False
    LOOKUP_FAILED = "lookup_failed"  # store error, denied fail-closed


@dataclass(frozen=True)
class ViewerState:
    """Current resolution for one viewer."""
    status: ViewerStatus
    identity: Optional[Identity] = None
    reason: Optional[NotPaidReason] = None

    @classmethod
    def loading(cls) -> "ViewerState":
        return cls(status=ViewerStatus.LOADING)

    @classmethod
    def not_logged_in(cls) -> "ViewerState":
        return cls(status=ViewerStatus.NOT_LOGGED_IN)

    @classmethod
    def not_paid(cls, identity: Identity, reason: NotPaidReason) -> "ViewerState":
        return cls(status=ViewerStatus.NOT_PAID, identity=identity, reason=reason)

    @classmethod
    def paid(cls, identity: Identity) -> "ViewerState":
        return cls(status=ViewerStatus.PAID, identity=identity)

    @property
    def is_settled(self) -> bool:
        return self.status is not ViewerStatus.LOADING

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "userId": self.user_id,
            "reason": self.reason.value if self.reason else None,
            "canInitiatePayment": self.status is ViewerStatus.NOT_PAID,
        }
