"""
Decoding of service JSON into domain entities.

Every payload goes through an explicit pydantic model; fields are never read
optimistically off a raw dict.
"""
from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from infrastructure.external.payments.exceptions import PaymentPayloadError


M = TypeVar("M", bound=BaseModel)


def unwrap(data: Any) -> Any:
    """Strip the optional ``{"data": ...}`` response envelope."""
    if isinstance(data, dict) and set(data) <= {"data", "meta", "success"} and "data" in data:
        return data["data"]
    return data


def payload_error(exc: ValidationError, *, provider: str, source: str) -> PaymentPayloadError:
    errors = exc.errors(include_url=False)
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    received = first.get("input")
    if isinstance(received, (dict, list, bytes)):
        received = type(received).__name__
    return PaymentPayloadError(
        f"Malformed {source}: {first.get('msg', 'invalid payload')}",
        provider=provider,
        field=field,
        received=received,
        details={"error_count": len(errors)},
    )


def decode(model: Type[M], data: Any, *, provider: str, source: str) -> M:
    try:
        return model.model_validate(unwrap(data))
    except ValidationError as exc:
        raise payload_error(exc, provider=provider, source=source) from exc


def decode_json(model: Type[M], raw: bytes, *, provider: str, source: str) -> M:
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise payload_error(exc, provider=provider, source=source) from exc


def decode_response(model: Type[M], response: Any, *, provider: str, source: str) -> M:
    """Decode an ``APIResponse`` body; a body that is not JSON is a payload error."""
    try:
        data = response.json()
    except ValueError as exc:
        raise PaymentPayloadError(
            f"Malformed {source}: body is not JSON",
            provider=provider,
            field=None,
            received=response.headers.get("content-type") or "unknown",
            details={"status_code": response.status_code},
        ) from exc
    return decode(model, data, provider=provider, source=source)
