"""
Alerts for payment and token-signing failures.

paid_but_unrecorded is logged at ERROR with a distinct alert name so it can
be routed to manual reconciliation separately from ordinary declines.
"""

import logging
import time
from typing import Dict, List

logger = logging.getLogger(__name__)

ALERT_PAID_BUT_UNRECORDED = "paid_but_unrecorded"
ALERT_SIGNING_FAILURE = "playback_signing_failure"
ALERT_REPEATED_PAYMENT_FAILURES = "repeated_payment_failures"

# In-memory counter for failed payments per user (sliding window)
_failure_counts: Dict[str, List[float]] = {}
FAILURE_THRESHOLD_PER_MIN = 5


def emit_paid_but_unrecorded(user_id: str, payment_id: str, error_message: str) -> None:
    """Charge succeeded but entitlement write failed: needs manual reconciliation."""
    logger.error(
        "Payment captured but entitlement not recorded",
        extra={
            "alert": ALERT_PAID_BUT_UNRECORDED,
            "user_id": user_id,
            "payment_id": payment_id,
            "error": error_message,
        },
    )


def emit_signing_failure(key_id: str, error_message: str) -> None:
    """Playback key could not be loaded or used for signing."""
    logger.error(
        "Playback token signing failure",
        extra={
            "alert": ALERT_SIGNING_FAILURE,
            "key_id": key_id,
            "error": error_message,
        },
    )


def _record_failure(user_id: str, now: float) -> int:
    cutoff = now - 60
    recent = [t for t in _failure_counts.get(user_id, ()) if t > cutoff]
    recent.append(now)
    _failure_counts[user_id] = recent
    return len(recent)


def prune_failure_counts(now: float) -> None:
    """Drop users with no failure inside the window."""
    cutoff = now - 60
    for user_id in [u for u, times in _failure_counts.items() if not times or times[-1] <= cutoff]:
        del _failure_counts[user_id]


def record_payment_failure(user_id: str, payment_id: str, code: str) -> None:
    """Record an ordinary declined/cancelled payment; alert if over threshold per minute."""
    logger.warning(
        "Payment not completed",
        extra={"user_id": user_id, "payment_id": payment_id, "result_code": code},
    )
    now = time.time()
    prune_failure_counts(now)
    count = _record_failure(user_id, now)
    if count >= FAILURE_THRESHOLD_PER_MIN:
        logger.error(
            "Repeated payment failures",
            extra={
                "alert": ALERT_REPEATED_PAYMENT_FAILURES,
                "user_id": user_id,
                "count_per_min": count,
            },
        )
