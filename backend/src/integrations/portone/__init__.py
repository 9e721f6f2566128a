"""PortOne V2 payment gateway integration."""

from src.integrations.portone.payment_client import (
    ChargeRequest,
    ChargeResult,
    PaymentGateway,
    PortOneClient,
    PortOneError,
)

__all__ = [
    "ChargeRequest",
    "ChargeResult",
    "PaymentGateway",
    "PortOneClient",
    "PortOneError",
]
