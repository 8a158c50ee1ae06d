"""
Request policies applied before a payment-creation call leaves the process.

Everything here is synchronous and raises before any network I/O, so a
rejected request never consumes quota on the service.
"""
from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Optional

from application.dtos.payments import CreatePayment
from domain.common.exceptions import (
    DomainValidationException,
    RewardLockViolationException,
)
from domain.payment.entity import Payment, thaw


EXPIRES_IN_MIN = 60
EXPIRES_IN_MAX = 86400
IDEMPOTENCY_KEY_MAX_LENGTH = 255
IDEMPOTENCY_HEADER = "Idempotency-Key"


def validate_create_request(req: CreatePayment) -> None:
    """Check amount, currency and expiry bounds of a creation request."""
    if req.amount.is_nan() or req.amount <= 0:
        raise DomainValidationException(
            "amount must be greater than zero",
            field="amount",
            expected="> 0",
            received=str(req.amount),
        )
    currency = req.currency
    if not currency or not (3 <= len(currency) <= 10) or not currency.isalpha():
        raise DomainValidationException(
            f"invalid currency code: {currency!r}",
            field="currency",
            expected="3-10 letters",
            received=currency,
        )
    if req.expires_in is not None and not (EXPIRES_IN_MIN <= req.expires_in <= EXPIRES_IN_MAX):
        raise DomainValidationException(
            f"expiresIn must be between {EXPIRES_IN_MIN} and {EXPIRES_IN_MAX} seconds",
            field="expires_in",
            expected=[EXPIRES_IN_MIN, EXPIRES_IN_MAX],
            received=req.expires_in,
        )


class IdempotencyGuard:
    """Attaches caller-supplied idempotency keys to creation requests.

    Deduplication itself happens on the service; the guard only makes sure a
    key, when given, is usable and reaches the wire unmodified.
    """

    header = IDEMPOTENCY_HEADER

    @staticmethod
    def validate_key(key: object) -> str:
        if not isinstance(key, str):
            raise DomainValidationException(
                "idempotency key must be a string",
                field="idempotency_key",
                expected="non-empty string",
                received=type(key).__name__,
            )
        if not key.strip():
            raise DomainValidationException(
                "idempotency key must not be empty or whitespace",
                field="idempotency_key",
                expected="non-empty string",
                received=key,
            )
        if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise DomainValidationException(
                f"idempotency key exceeds {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
                field="idempotency_key",
                expected=f"<= {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
                received=len(key),
            )
        if not (key.isascii() and key.isprintable()):
            raise DomainValidationException(
                "idempotency key must contain printable ASCII characters only",
                field="idempotency_key",
                expected="printable ASCII",
                received=key,
            )
        return key

    def attach(self, req: CreatePayment, idempotency_key: Optional[str] = None) -> CreatePayment:
        """Return ``req`` carrying ``idempotency_key``.

        ``None`` leaves the request untouched (a key already set on the
        request is still validated). The original request is never mutated.
        """
        if idempotency_key is None:
            if req.idempotency_key is not None:
                self.validate_key(req.idempotency_key)
            return req
        key = self.validate_key(idempotency_key)
        return req.model_copy(update={"idempotency_key": key})

    @staticmethod
    def derive_key(req: CreatePayment) -> str:
        """Reproducible key derived from business identifiers (no timestamp).

        Opt-in helper for callers without their own key scheme; two requests
        for the same order, amount and reward collapse to one payment.
        """
        reward = ""
        if req.reward_amount is not None:
            reward = f"{req.reward_amount.normalize()}:{req.reward_currency or ''}"
        base = "|".join([
            "create",
            req.order_id or "",
            str(req.amount.normalize()),
            req.currency,
            (req.chain or "").lower(),
            (req.token or "").lower(),
            reward,
        ])
        return hashlib.sha256(base.encode("utf-8")).hexdigest()


class RewardLockPolicy:
    """Reward fields are fixed by the creation call for the payment's lifetime.

    :class:`Payment` snapshots are frozen, so there is no client-side path that
    changes a reward. Reusing a payment as a template always goes through
    :meth:`template_from`, which yields a *new* creation request.
    """

    @staticmethod
    def validate(req: CreatePayment) -> None:
        if req.reward_amount is not None:
            if req.reward_amount.is_nan() or req.reward_amount < 0:
                raise DomainValidationException(
                    "rewardAmount must be non-negative",
                    field="reward_amount",
                    expected=">= 0",
                    received=str(req.reward_amount),
                )
            if not (req.reward_currency and req.reward_currency.strip()):
                raise DomainValidationException(
                    "rewardCurrency is required when rewardAmount is set",
                    field="reward_currency",
                    expected="non-empty string",
                    received=req.reward_currency,
                )
        elif req.reward_currency is not None and not req.reward_currency.strip():
            raise DomainValidationException(
                "rewardCurrency must not be empty",
                field="reward_currency",
                expected="non-empty string",
                received=req.reward_currency,
            )

    @staticmethod
    def template_from(payment: Payment, **overrides) -> CreatePayment:
        """Build a fresh creation request modelled on an existing payment.

        The result has no identity and no idempotency key; submitting it
        creates a different payment with its own locked reward.
        """
        overrides.pop("idempotency_key", None)
        if payment.amount is None and overrides.get("amount") is None:
            raise DomainValidationException(
                "Payment snapshot carries no amount; pass one explicitly",
                field="amount",
            )
        fields = {
            "amount": payment.amount,
            "currency": payment.currency or "USD",
            "chain": payment.chain,
            "token": payment.token,
            "reward_amount": payment.reward_amount,
            "reward_currency": payment.reward_currency,
            "reward_data": thaw(payment.reward_data) if payment.reward_data is not None else None,
            "metadata": thaw(payment.metadata) if payment.metadata else None,
        }
        fields.update(overrides)
        return CreatePayment(**fields)

    @staticmethod
    def verify_unchanged(original: Payment, refreshed: Payment) -> None:
        """Raise if a newer snapshot of the same payment reports another reward."""
        if original.id != refreshed.id:
            raise DomainValidationException(
                "snapshots belong to different payments",
                field="id",
                expected=original.id,
                received=refreshed.id,
            )
        names = ("reward_amount", "reward_currency", "reward_data")
        for name, before, after in zip(names, original.reward, refreshed.reward):
            if _normalized(before) != _normalized(after):
                raise RewardLockViolationException(
                    original.id, field=name, original=before, received=after,
                )


def _normalized(value):
    if isinstance(value, Decimal):
        return value.normalize()
    return value
