"""
PortOne V2 payment gateway client for one-time course purchases.

Uses PortOne's REST API (https://api.portone.io).
The buyer pays in PortOne's hosted checkout (browser SDK); this client
pre-registers the expected amount and then waits for the payment to reach
a terminal status, which it reports as a ChargeResult.

ChargeResult.code is None on success. Any other value is a failure or
cancellation and carries a user-displayable message.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from src.config.settings import PortOneConfig

logger = logging.getLogger(__name__)

# PortOne payment statuses
STATUS_PAID = "PAID"
PENDING_STATUSES = frozenset({"READY", "PAY_PENDING", "VIRTUAL_ACCOUNT_ISSUED"})
FAILED_STATUSES = frozenset({"FAILED", "CANCELLED", "PARTIAL_CANCELLED"})

CODE_ABANDONED = "CHECKOUT_ABANDONED"
CODE_AMOUNT_MISMATCH = "AMOUNT_MISMATCH"


@dataclass
class ChargeRequest:
    """A single payment attempt for one item by one user."""
    payment_id: str
    item_id: str
    user_id: str
    order_name: str
    amount: int
    currency: str = "CURRENCY_KRW"
    pay_method: str = "EASY_PAY"
    customer_email: Optional[str] = None
    easy_pay_provider: Optional[str] = None


@dataclass
class ChargeResult:
    """Terminal gateway result. code is None on success."""
    code: Optional[str] = None
    message: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.code is None


class PortOneError(Exception):
    """Error from PortOne API."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class PaymentGateway(ABC):
    """Hosted-checkout payment gateway."""

    async def prepare(self, request: ChargeRequest) -> None:
        """Register the attempt with the gateway before checkout opens."""
        return None

    def checkout_params(self, request: ChargeRequest) -> Dict[str, Any]:
        """Parameters the browser SDK needs to open the hosted checkout."""
        params: Dict[str, Any] = {
            "paymentId": request.payment_id,
            "orderName": request.order_name,
            "totalAmount": request.amount,
            "currency": request.currency,
            "payMethod": request.pay_method,
        }
        if request.customer_email:
            params["customer"] = {"email": request.customer_email}
        return params

    @abstractmethod
    async def charge(self, request: ChargeRequest) -> ChargeResult:
        """
        Wait for the attempt to reach a terminal result.

        Returns a ChargeResult with code=None on success. Abandoned checkouts
        are reported as failures, not raised.

        Raises:
            PortOneError: If the gateway cannot be reached
        """


def _currency_code(currency: str) -> str:
    """'CURRENCY_KRW' (SDK form) -> 'KRW' (REST form)."""
    return currency[len("CURRENCY_"):] if currency.startswith("CURRENCY_") else currency


class PortOneClient(PaymentGateway):
    """
    Client for PortOne V2 REST API.

    Handles:
    - Pre-registering the expected amount for a payment id
    - Looking up payment status
    - Waiting for a hosted checkout to finish
    """

    def __init__(self, config: PortOneConfig, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize PortOne client.

        Args:
            config: PortOneConfig with API secret, store id and channel key
            http_client: Optional preconfigured httpx client (tests)
        """
        self.config = config
        self._client = http_client or httpx.AsyncClient(
            base_url=config.api_base_url,
            headers={
                "Authorization": f"PortOne {config.api_secret}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, json: Optional[Dict] = None) -> Optional[Dict[str, Any]]:
        """
        Execute a request against PortOne API.

        Returns:
            Response JSON, or None when PortOne reports PAYMENT_NOT_FOUND

        Raises:
            PortOneError: If the API call fails
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.RequestError as e:
            logger.error("PortOne API request error", extra={
                "path": path,
                "error": str(e),
            })
            raise PortOneError(f"Request failed: {str(e)}")

        if response.status_code == 404:
            body = _safe_json(response)
            if body.get("type") == "PAYMENT_NOT_FOUND":
                return None

        if response.status_code >= 400:
            body = _safe_json(response)
            logger.error("PortOne API HTTP error", extra={
                "path": path,
                "status_code": response.status_code,
                "error_type": body.get("type"),
            })
            raise PortOneError(
                body.get("message") or f"PortOne API error: {response.status_code}",
                code=body.get("type") or str(response.status_code),
                details=body,
            )

        return _safe_json(response)

    async def prepare(self, request: ChargeRequest) -> None:
        """Pre-register the amount so a tampered checkout cannot pay less."""
        await self._request(
            "POST",
            f"/payments/{request.payment_id}/pre-register",
            json={
                "storeId": self.config.store_id,
                "totalAmount": request.amount,
                "currency": _currency_code(request.currency),
            },
        )
        logger.info("PortOne payment pre-registered", extra={
            "payment_id": request.payment_id,
            "item_id": request.item_id,
            "user_id": request.user_id,
        })

    def checkout_params(self, request: ChargeRequest) -> Dict[str, Any]:
        params = super().checkout_params(request)
        params["storeId"] = self.config.store_id
        params["channelKey"] = self.config.channel_key
        if request.pay_method == "EASY_PAY":
            params["easyPay"] = {
                "easyPayProvider": request.easy_pay_provider or self.config.easy_pay_provider,
            }
        return params

    async def get_payment(self, payment_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a payment by id. None if PortOne has no such payment yet."""
        return await self._request("GET", f"/payments/{payment_id}")

    async def charge(self, request: ChargeRequest) -> ChargeResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.checkout_window_seconds

        while True:
            payment = await self.get_payment(request.payment_id)
            result = self._terminal_result(payment, request)
            if result is not None:
                return result

            if loop.time() >= deadline:
                logger.info("PortOne checkout abandoned", extra={
                    "payment_id": request.payment_id,
                    "last_status": payment.get("status") if payment else None,
                })
                return ChargeResult(code=CODE_ABANDONED, message="Checkout was not completed")

            await asyncio.sleep(self.config.poll_interval_seconds)

    def _terminal_result(self, payment: Optional[Dict[str, Any]], request: ChargeRequest) -> Optional[ChargeResult]:
        """Map a PortOne payment to a ChargeResult, or None while still pending."""
        if payment is None:
            return None

        status = payment.get("status")
        if status in PENDING_STATUSES:
            return None

        if status == STATUS_PAID:
            amount = (payment.get("amount") or {}).get("total")
            currency = payment.get("currency")
            if amount != request.amount or currency != _currency_code(request.currency):
                logger.error("PortOne paid amount does not match order", extra={
                    "payment_id": request.payment_id,
                    "expected_amount": request.amount,
                    "paid_amount": amount,
                    "currency": currency,
                })
                return ChargeResult(
                    code=CODE_AMOUNT_MISMATCH,
                    message="Paid amount does not match the order",
                    transaction_id=payment.get("transactionId"),
                )
            return ChargeResult(transaction_id=payment.get("transactionId"))

        if status in FAILED_STATUSES:
            failure = payment.get("failure") or {}
            return ChargeResult(
                code=status,
                message=failure.get("reason") or failure.get("pgMessage") or "Payment was not completed",
                transaction_id=payment.get("transactionId"),
            )

        logger.warning("Unknown PortOne payment status", extra={
            "payment_id": request.payment_id,
            "status": status,
        })
        return ChargeResult(code=str(status), message="Unexpected payment status")


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
