"""Domain business exceptions shared by the domain and infrastructure layers.

The core layer only maps these onto transport responses; the domain layer must
not depend on core.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for every error raised by the client."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.field:
            parts.append(f"field={self.field}")
        if self.details:
            parts.append(f"details={self.details}")
        return " | ".join(parts)


class DomainValidationException(BusinessException):
    """Input rejected before any network call was made."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        expected: Any = None,
        received: Any = None,
        details: dict | None = None,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
        error_type: str = "ValidationError",
    ):
        full_details: dict[str, Any] = {}
        if expected is not None:
            full_details["expected"] = expected
        if received is not None:
            full_details["received"] = received
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details or None,
            field=field,
        )


class ConfigurationException(DomainValidationException):
    """A required setting (API key, webhook secret, ...) is missing or invalid.

    Kept apart from signature failures so that a forgotten secret is never
    reported as tampering.
    """

    def __init__(self, message: str, *, setting: str, details: dict | None = None):
        super().__init__(
            message,
            field=setting,
            details=details,
            code=BusinessCode.CONFIGURATION_ERROR,
            error_type="ConfigurationError",
        )


class RewardLockViolationException(BusinessException):
    def __init__(self, payment_id: str, *, field: str, original: Any, received: Any):
        super().__init__(
            code=PaymentCode.REWARD_LOCKED,
            message=f"Reward field '{field}' of payment {payment_id} changed after creation",
            error_type="RewardLockViolation",
            details={
                "payment_id": payment_id,
                "expected": _plain(original),
                "received": _plain(received),
            },
            field=field,
        )


class PaymentFailedException(BusinessException):
    """A payment reached a terminal status other than CONFIRMED."""

    def __init__(self, payment: Any):
        status = getattr(payment.status, "value", payment.status)
        super().__init__(
            code=PaymentCode.PAYMENT_FAILED,
            message=f"Payment {payment.id} ended with status {status}",
            error_type="PaymentFailed",
            details={"payment_id": payment.id, "status": status},
        )
        self.payment = payment
        self.status = payment.status


class PaymentWaitTimeoutException(BusinessException):
    def __init__(self, payment_id: str, *, timeout: float, elapsed: float, attempts: int, last_status: Any = None):
        super().__init__(
            code=PaymentCode.WAIT_TIMEOUT,
            message=f"Payment {payment_id} did not reach a final state within {timeout}s",
            error_type="TimeoutError",
            details={
                "payment_id": payment_id,
                "timeout": timeout,
                "elapsed": round(elapsed, 3),
                "attempts": attempts,
                "last_status": getattr(last_status, "value", last_status),
            },
        )
        self.timeout = timeout
        self.elapsed = elapsed
        self.attempts = attempts


class PaymentWaitCancelledException(BusinessException):
    def __init__(self, payment_id: str, *, attempts: int):
        super().__init__(
            code=PaymentCode.WAIT_CANCELLED,
            message=f"Waiting for payment {payment_id} was cancelled",
            error_type="CancellationError",
            details={"payment_id": payment_id, "attempts": attempts},
        )
        self.attempts = attempts


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "items"):
        return {k: _plain(v) for k, v in value.items()}
    return str(value)
