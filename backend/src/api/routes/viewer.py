"""
Viewer entitlement endpoint.

Runs a fresh entitlement evaluation for the caller's session on every
request. Used by the course page to decide between login, payment and
playback. Minting re-checks entitlement on its own; this is for UX only.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from src.api.dependencies.services import (
    get_bearer_token,
    get_entitlement_store,
    get_identity_provider,
)
from src.entitlements.state_machine import EntitlementStateMachine
from src.entitlements.store import EntitlementStore
from src.platform.identity import IdentityProvider

router = APIRouter(prefix="/api/viewer", tags=["viewer"])


@router.get("/state", response_model=dict)
async def get_viewer_state(
    bearer_token: Optional[str] = Depends(get_bearer_token),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    entitlement_store: EntitlementStore = Depends(get_entitlement_store),
) -> dict:
    """Return {status, userId, reason, canInitiatePayment} for the caller."""
    machine = EntitlementStateMachine(identity_provider, entitlement_store)
    state = await machine.evaluate(bearer_token)
    return state.to_dict()
