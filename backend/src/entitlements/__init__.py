"""
Viewer entitlements for premium course videos.

This package provides:
- Identity, EntitlementRecord: collaborator data types
- ViewerState / ViewerStatus: tagged viewer resolution
- EntitlementStore: durable per-user has_paid records (SQLAlchemy upsert)
- EntitlementStateMachine: fail-closed viewer resolution
- Errors, including PaidButUnrecordedError for charged-but-unrecorded payments
"""

from src.entitlements.errors import (
    EntitlementError,
    EntitlementLookupError,
    EntitlementWriteError,
    EvaluationInProgressError,
    InvalidTransitionError,
    PaidButUnrecordedError,
    PaymentInProgressError,
)
from src.entitlements.models import (
    EntitlementRecord,
    Identity,
    NotPaidReason,
    ViewerState,
    ViewerStatus,
)
from src.entitlements.store import EntitlementStore, SqlAlchemyEntitlementStore
from src.entitlements.state_machine import EntitlementStateMachine

__all__ = [
    # Models
    "EntitlementRecord",
    "Identity",
    "NotPaidReason",
    "ViewerState",
    "ViewerStatus",
    # Store
    "EntitlementStore",
    "SqlAlchemyEntitlementStore",
    # State machine
    "EntitlementStateMachine",
    # Errors
    "EntitlementError",
    "EntitlementLookupError",
    "EntitlementWriteError",
    "EvaluationInProgressError",
    "InvalidTransitionError",
    "PaidButUnrecordedError",
    "PaymentInProgressError",
]
