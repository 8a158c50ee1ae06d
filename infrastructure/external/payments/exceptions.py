"""
Webhook exceptions mapped to unified BusinessException variants.

A signature failure is a security event; a payload failure is a defect in an
authentic message. Callers must be able to tell them apart.
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="SignatureInvalidError",
            details=full_details,
        )


class WebhookReplayError(PaymentSignatureError):
    """Authentic event outside the accepted replay window."""

    def __init__(self, *, provider: str, age_seconds: float, tolerance_seconds: int):
        super().__init__(
            f"Webhook timestamp is {age_seconds:.0f}s away from now (tolerance {tolerance_seconds}s)",
            provider=provider,
            details={"age_seconds": round(age_seconds, 3), "expected": f"<= {tolerance_seconds}"},
        )


class PaymentPayloadError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        field: Optional[str] = None,
        received: Any = None,
        details: Optional[dict] = None,
    ):
        full_details: dict[str, Any] = {"provider": provider}
        if received is not None:
            full_details["received"] = received
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PAYLOAD_MALFORMED,
            message=message,
            error_type="PayloadMalformedError",
            details=full_details,
            field=field,
        )
