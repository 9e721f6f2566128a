"""
Viewer entitlement state machine.

Resolves a viewer into NOT_LOGGED_IN, NOT_PAID or PAID. Every evaluation
starts from LOADING and re-queries the identity provider and the
entitlement store; nothing is cached between evaluations, so a payment
that has just been recorded is always reflected.

Fail-closed: an entitlement lookup error resolves to NOT_PAID, never PAID.
An identity failure resolves to NOT_LOGGED_IN because there is no user to
check entitlement for.
"""

import asyncio
import logging
from typing import Optional

from src.entitlements.errors import EvaluationInProgressError, InvalidTransitionError
from src.entitlements.models import Identity, NotPaidReason, ViewerState, ViewerStatus
from src.entitlements.store import EntitlementStore
from src.platform.identity import IdentityProvider

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[ViewerStatus, frozenset[ViewerStatus]] = {
    ViewerStatus.LOADING: frozenset({
        ViewerStatus.NOT_LOGGED_IN,
        ViewerStatus.NOT_PAID,
        ViewerStatus.PAID,
    }),
    ViewerStatus.NOT_LOGGED_IN: frozenset({ViewerStatus.LOADING}),
    ViewerStatus.NOT_PAID: frozenset({ViewerStatus.LOADING}),
    ViewerStatus.PAID: frozenset({ViewerStatus.LOADING}),
}


class EntitlementStateMachine:
    """
    Per-viewer resolution of access to premium content.

    Only one evaluation may be pending at a time; a second call while one
    is in flight raises EvaluationInProgressError. Reading `state` has no
    side effects.
    """

    def __init__(self, identity_provider: IdentityProvider, entitlement_store: EntitlementStore):
        self._identity_provider = identity_provider
        self._entitlement_store = entitlement_store
        self._state = ViewerState.loading()
        self._evaluating = False

    @property
    def state(self) -> ViewerState:
        return self._state

    @property
    def is_evaluating(self) -> bool:
        return self._evaluating

    @property
    def can_initiate_payment(self) -> bool:
        return not self._evaluating and self._state.status is ViewerStatus.NOT_PAID

    async def evaluate(self, bearer_token: Optional[str]) -> ViewerState:
        """Re-resolve the viewer from scratch and return the settled state."""
        if self._evaluating:
            raise EvaluationInProgressError()

        self._evaluating = True
        try:
            if self._state.status is not ViewerStatus.LOADING:
                self._transition(ViewerState.loading())
            self._transition(await self._resolve(bearer_token))
            return self._state
        finally:
            self._evaluating = False

    def _transition(self, new_state: ViewerState) -> None:
        allowed = ALLOWED_TRANSITIONS[self._state.status]
        if new_state.status not in allowed:
            raise InvalidTransitionError(self._state.status.value, new_state.status.value)
        self._state = new_state

    async def _resolve(self, bearer_token: Optional[str]) -> ViewerState:
        identity = await self._verify_identity(bearer_token)
        if identity is None:
            return ViewerState.not_logged_in()

        try:
            record = await asyncio.to_thread(
                self._entitlement_store.get_entitlement, identity.user_id
            )
        except Exception:
            logger.warning(
                "Entitlement lookup failed; denying access",
                extra={"user_id": identity.user_id},
                exc_info=True,
            )
            return ViewerState.not_paid(identity, NotPaidReason.LOOKUP_FAILED)

        if record is None:
            return ViewerState.not_paid(identity, NotPaidReason.NO_RECORD)
        if not record.has_paid:
            return ViewerState.not_paid(identity, NotPaidReason.NOT_PAID)
        return ViewerState.paid(identity)

    async def _verify_identity(self, bearer_token: Optional[str]) -> Optional[Identity]:
        if not bearer_token:
            return None
        try:
            return await asyncio.to_thread(self._identity_provider.verify, bearer_token)
        except Exception:
            logger.warning("Identity verification failed", exc_info=True)
            return None
