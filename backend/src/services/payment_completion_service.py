"""
Payment completion for one-time course purchases.

Drives a hosted-checkout charge to a terminal result and, on success,
durably records the buyer's entitlement.

Handles:
- Per-attempt payment ids (payment-{item}-{user}-{epoch_ms})
- Gateway pre-registration and browser checkout parameters
- Recording has_paid=True after a confirmed charge
- Surfacing charged-but-unrecorded payments for manual reconciliation
- Re-running entitlement resolution after success

SECURITY: Access is never granted from a local flag. After the upsert is
committed the viewer is re-resolved from the store.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from src.entitlements.errors import PaidButUnrecordedError, PaymentInProgressError
from src.entitlements.models import Identity, ViewerState
from src.entitlements.state_machine import EntitlementStateMachine
from src.entitlements.store import EntitlementStore
from src.integrations.portone.payment_client import (
    ChargeRequest,
    PaymentGateway,
    PortOneError,
)
from src.monitoring.payment_alerts import emit_paid_but_unrecorded, record_payment_failure

logger = logging.getLogger(__name__)

CODE_GATEWAY_ERROR = "GATEWAY_ERROR"

PAID_BUT_UNRECORDED_MESSAGE = (
    "Your payment was completed but access could not be activated. "
    "Please contact support with payment id {payment_id}."
)


class PaymentIdGenerator:
    """
    Builds unique payment ids per attempt.

    The millisecond component never repeats within the process, so two
    attempts for the same item and user in the same instant still differ.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._last_ms = 0

    def next_id(self, item_id: str, user_id: str) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
        return f"payment-{item_id}-{user_id}-{now_ms}"

    @staticmethod
    def belongs_to(payment_id: str, item_id: str, user_id: str) -> bool:
        """True if payment_id was issued for this item and user."""
        prefix = f"payment-{item_id}-{user_id}-"
        return payment_id.startswith(prefix) and payment_id[len(prefix):].isdigit()


class PaymentStatus(str, Enum):
    """Outcome of a payment attempt."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NO_IDENTITY = "no_identity"
    PAID_BUT_UNRECORDED = "paid_but_unrecorded"


@dataclass
class PaymentOutcome:
    """Result of complete_payment, shaped for the UI."""
    status: PaymentStatus
    payment_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    viewer_state: Optional[ViewerState] = None

    @property
    def succeeded(self) -> bool:
        return self.status is PaymentStatus.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "paymentId": self.payment_id,
            "message": self.message,
            "errorCode": self.error_code,
            "viewer": self.viewer_state.to_dict() if self.viewer_state else None,
        }


class PaymentCompletionHandler:
    """
    Turns a successful charge into a durable entitlement.

    One attempt may be pending per handler; a second call while the first is
    suspended in the gateway raises PaymentInProgressError.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        entitlement_store: EntitlementStore,
        state_machine: EntitlementStateMachine,
        *,
        payment_ids: Optional[PaymentIdGenerator] = None,
    ):
        self._gateway = gateway
        self._entitlement_store = entitlement_store
        self._state_machine = state_machine
        self._payment_ids = payment_ids or PaymentIdGenerator()
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def _build_request(
        self,
        identity: Identity,
        item_id: str,
        order_name: str,
        amount: int,
        currency: str,
        pay_method: str,
        payment_id: Optional[str] = None,
    ) -> ChargeRequest:
        return ChargeRequest(
            payment_id=payment_id or self._payment_ids.next_id(item_id, identity.user_id),
            item_id=item_id,
            user_id=identity.user_id,
            order_name=order_name,
            amount=amount,
            currency=currency,
            pay_method=pay_method,
            customer_email=identity.email,
        )

    async def prepare_checkout(
        self,
        identity: Identity,
        item_id: str,
        order_name: str,
        amount: int,
        currency: str = "CURRENCY_KRW",
        pay_method: str = "EASY_PAY",
    ) -> Dict[str, Any]:
        """
        Allocate a payment id and register it with the gateway.

        Returns:
            Parameters for the browser checkout SDK (includes paymentId)

        Raises:
            ValueError: If amount is not positive
            PortOneError: If the gateway rejects the registration
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        request = self._build_request(identity, item_id, order_name, amount, currency, pay_method)
        await self._gateway.prepare(request)
        return self._gateway.checkout_params(request)

    async def complete_payment(
        self,
        identity: Optional[Identity],
        item_id: str,
        order_name: str,
        amount: int,
        currency: str = "CURRENCY_KRW",
        pay_method: str = "EASY_PAY",
        bearer_token: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> PaymentOutcome:
        """
        Charge, record entitlement, then re-resolve the viewer.

        Args:
            identity: Resolved buyer; None is a no-op failure
            item_id: Course being purchased
            order_name: Display label shown in checkout
            amount: Amount in the currency's minor unit
            bearer_token: Session used to re-evaluate entitlement after success
            payment_id: Id from prepare_checkout. Generated when omitted, which
                only suits gateways that charge server-side

        Raises:
            PaymentInProgressError: If another attempt is pending on this handler
            ValueError: If payment_id was issued for another item or user
        """
        if identity is None:
            logger.warning("Payment attempted without identity", extra={"item_id": item_id})
            return PaymentOutcome(status=PaymentStatus.NO_IDENTITY, message="Login required")

        if payment_id is not None and not PaymentIdGenerator.belongs_to(
            payment_id, item_id, identity.user_id
        ):
            raise ValueError("payment_id does not belong to this purchase")

        if self._in_progress:
            raise PaymentInProgressError()

        self._in_progress = True
        try:
            request = self._build_request(
                identity, item_id, order_name, amount, currency, pay_method, payment_id
            )
            return await self._complete(request, bearer_token)
        finally:
            self._in_progress = False

    async def _complete(self, request: ChargeRequest, bearer_token: Optional[str]) -> PaymentOutcome:
        logger.info("Payment started", extra={
            "payment_id": request.payment_id,
            "item_id": request.item_id,
            "user_id": request.user_id,
            "amount": request.amount,
        })

        try:
            result = await self._gateway.charge(request)
        except PortOneError as e:
            code = e.code or CODE_GATEWAY_ERROR
            record_payment_failure(request.user_id, request.payment_id, code)
            return PaymentOutcome(
                status=PaymentStatus.FAILED,
                payment_id=request.payment_id,
                message=f"Payment failed: {e}",
                error_code=code,
            )

        if not result.succeeded:
            record_payment_failure(request.user_id, request.payment_id, result.code)
            return PaymentOutcome(
                status=PaymentStatus.FAILED,
                payment_id=request.payment_id,
                message=f"Payment failed: {result.message or result.code}",
                error_code=result.code,
            )

        try:
            await asyncio.to_thread(
                self._entitlement_store.upsert_entitlement, request.user_id, True
            )
        except Exception as e:
            # Money has moved; any store failure here needs reconciliation.
            error = PaidButUnrecordedError(request.user_id, request.payment_id, cause=e)
            emit_paid_but_unrecorded(request.user_id, request.payment_id, str(e))
            return PaymentOutcome(
                status=PaymentStatus.PAID_BUT_UNRECORDED,
                payment_id=request.payment_id,
                message=PAID_BUT_UNRECORDED_MESSAGE.format(payment_id=request.payment_id),
                error_code=error.error_code,
            )

        logger.info("Payment recorded", extra={
            "payment_id": request.payment_id,
            "user_id": request.user_id,
            "transaction_id": result.transaction_id,
        })

        state = await self._state_machine.evaluate(bearer_token)
        return PaymentOutcome(
            status=PaymentStatus.SUCCEEDED,
            payment_id=request.payment_id,
            viewer_state=state,
        )
