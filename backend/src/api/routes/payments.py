"""
Payment API routes for one-time course purchases.

The buyer is always the bearer of the session token.
user_id is NEVER accepted from the request body.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from src.api.dependencies.services import (
    get_bearer_token,
    get_entitlement_store,
    get_identity_provider,
    get_payment_gateway,
    get_payment_ids,
)
from src.entitlements.state_machine import EntitlementStateMachine
from src.entitlements.store import EntitlementStore
from src.integrations.portone.payment_client import PaymentGateway, PortOneError
from src.platform.errors import AuthenticationError, ServiceUnavailableError, ValidationError
from src.platform.identity import Identity, IdentityProvider
from src.services.payment_completion_service import (
    PaymentCompletionHandler,
    PaymentIdGenerator,
    PaymentStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

OUTCOME_STATUS_CODES = {
    PaymentStatus.SUCCEEDED: status.HTTP_200_OK,
    PaymentStatus.FAILED: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentStatus.NO_IDENTITY: status.HTTP_401_UNAUTHORIZED,
    PaymentStatus.PAID_BUT_UNRECORDED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# Request Models

class CheckoutRequest(BaseModel):
    """Course purchase request."""
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(..., alias="courseId", min_length=1)
    title: str = Field(..., min_length=1, description="Order name shown in checkout")
    price: int = Field(..., ge=0, description="Price in KRW")


class CompletePaymentRequest(CheckoutRequest):
    """Completion request; paymentId is the id /prepare allocated."""
    payment_id: str = Field(..., alias="paymentId", min_length=1)


# Helpers

async def _require_identity(bearer_token: Optional[str], identity_provider: IdentityProvider) -> Identity:
    if not bearer_token:
        raise AuthenticationError("Authentication required")
    try:
        identity = await run_in_threadpool(identity_provider.verify, bearer_token)
    except Exception:
        logger.warning("Identity provider failed during payment", exc_info=True)
        identity = None
    if identity is None:
        raise AuthenticationError("Invalid session")
    return identity


def _require_price(body: CheckoutRequest) -> None:
    if body.price == 0:
        raise ValidationError("Free courses do not require payment")


def _handler(
    identity_provider: IdentityProvider,
    entitlement_store: EntitlementStore,
    gateway: PaymentGateway,
    payment_ids: PaymentIdGenerator,
) -> PaymentCompletionHandler:
    return PaymentCompletionHandler(
        gateway,
        entitlement_store,
        EntitlementStateMachine(identity_provider, entitlement_store),
        payment_ids=payment_ids,
    )


# Routes

@router.post("/prepare")
async def prepare_checkout(
    body: CheckoutRequest,
    bearer_token: Optional[str] = Depends(get_bearer_token),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    entitlement_store: EntitlementStore = Depends(get_entitlement_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    payment_ids: PaymentIdGenerator = Depends(get_payment_ids),
) -> dict:
    """
    Allocate a payment id and return the checkout SDK parameters.

    The client opens the hosted checkout with these parameters and then
    calls /complete with the same paymentId.
    """
    identity = await _require_identity(bearer_token, identity_provider)
    _require_price(body)

    handler = _handler(identity_provider, entitlement_store, gateway, payment_ids)
    try:
        return await handler.prepare_checkout(
            identity,
            item_id=body.course_id,
            order_name=body.title,
            amount=body.price,
        )
    except PortOneError as e:
        logger.error("Checkout preparation failed", extra={
            "user_id": identity.user_id,
            "course_id": body.course_id,
            "error_code": e.code,
        })
        raise ServiceUnavailableError("Payment service unavailable")


@router.post("/complete")
async def complete_payment(
    body: CompletePaymentRequest,
    bearer_token: Optional[str] = Depends(get_bearer_token),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    entitlement_store: EntitlementStore = Depends(get_entitlement_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    payment_ids: PaymentIdGenerator = Depends(get_payment_ids),
) -> JSONResponse:
    """
    Wait for the checkout to finish and record the entitlement.

    Status codes:
    - 200: paid and recorded; body includes the re-resolved viewer state
    - 402: declined, cancelled or abandoned; nothing recorded
    - 500: paid but not recorded; the message asks the user to contact support
    """
    identity = await _require_identity(bearer_token, identity_provider)
    _require_price(body)

    handler = _handler(identity_provider, entitlement_store, gateway, payment_ids)
    try:
        outcome = await handler.complete_payment(
            identity,
            item_id=body.course_id,
            order_name=body.title,
            amount=body.price,
            bearer_token=bearer_token,
            payment_id=body.payment_id,
        )
    except ValueError as e:
        raise ValidationError(str(e))
    return JSONResponse(
        status_code=OUTCOME_STATUS_CODES[outcome.status],
        content=outcome.to_dict(),
    )
