"""
Entitlement error hierarchy.

Provides:
- EntitlementError: base for all entitlement failures
- EntitlementLookupError: store read failed (callers fail closed)
- EntitlementWriteError: store upsert failed
- PaidButUnrecordedError: charge succeeded but the upsert did not
- InvalidTransitionError: viewer state machine guard violated
- EvaluationInProgressError / PaymentInProgressError: re-entrancy guards
"""

from typing import Optional


class EntitlementError(Exception):
    """Base exception for entitlement-related failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EntitlementLookupError(EntitlementError):
    """Raised when the entitlement store cannot be read."""

    def __init__(self, user_id: str, detail: str, cause: Optional[Exception] = None):
        self.user_id = user_id
        self.detail = detail
        self.cause = cause
        self.error_code = "ENTITLEMENT_LOOKUP_FAILED"
        super().__init__(f"Entitlement lookup failed for {user_id}: {detail}")


class EntitlementWriteError(EntitlementError):
    """Raised when the entitlement upsert is not committed."""

    def __init__(self, user_id: str, detail: str, cause: Optional[Exception] = None):
        self.user_id = user_id
        self.detail = detail
        self.cause = cause
        self.error_code = "ENTITLEMENT_WRITE_FAILED"
        super().__init__(f"Entitlement write failed for {user_id}: {detail}")


class PaidButUnrecordedError(EntitlementError):
    """
    The gateway confirmed the charge but the entitlement was not recorded.

    Money has moved. This must be reconciled manually and is never reported
    as an ordinary payment failure.
    """

    def __init__(self, user_id: str, payment_id: str, cause: Optional[Exception] = None):
        self.user_id = user_id
        self.payment_id = payment_id
        self.cause = cause
        self.error_code = "PAID_BUT_UNRECORDED"
        super().__init__(
            f"Payment {payment_id} succeeded for {user_id} but entitlement was not recorded"
        )

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "user_id": self.user_id,
            "payment_id": self.payment_id,
        }


class InvalidTransitionError(EntitlementError):
    """Raised when the viewer state machine is asked for a forbidden transition."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid viewer transition {from_status} -> {to_status}")


class EvaluationInProgressError(EntitlementError):
    """Raised when evaluate() is called while an evaluation is pending."""

    def __init__(self):
        super().__init__("Entitlement evaluation already in progress")


class PaymentInProgressError(EntitlementError):
    """Raised when a payment is started while another is pending."""

    def __init__(self):
        super().__init__("Payment already in progress")
