"""
Payment specific codes and service status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    AUTHENTICATION_ERROR = 60005
    NETWORK_ERROR = 60006
    NOT_FOUND = 60007
    REMOTE_VALIDATION_ERROR = 60008
    PAYLOAD_MALFORMED = 60009

    # Payment lifecycle (61xxx)
    PAYMENT_FAILED = 61000
    WAIT_TIMEOUT = 61001
    WAIT_CANCELLED = 61002
    REWARD_LOCKED = 61003


# Wire status -> PaymentStatus value. Keys are matched case-insensitively.
SERVICE_STATUS_TO_INTERNAL = {
    "pending": "PENDING",
    "waiting": "PENDING",
    "partially_paid": "PARTIALLY_PAID",
    "partial": "PARTIALLY_PAID",
    "underpaid": "PARTIALLY_PAID",
    "confirmed": "CONFIRMED",
    "paid": "CONFIRMED",
    "completed": "CONFIRMED",
    "expired": "EXPIRED",
    "failed": "FAILED",
    "cancelled": "CANCELLED",
    "canceled": "CANCELLED",
}
