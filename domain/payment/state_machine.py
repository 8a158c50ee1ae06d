"""
Payment lifecycle classification.

The service performs every transition; this module only classifies a
snapshot. All predicates are pure functions of the snapshot and ``now``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .entity import Payment, PaymentStatus


FINAL_STATUSES = frozenset({
    PaymentStatus.CONFIRMED,
    PaymentStatus.EXPIRED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
})

# Statuses that still accept funds and can therefore lapse client-side.
OPEN_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PARTIALLY_PAID})

TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PARTIALLY_PAID,
        PaymentStatus.CONFIRMED,
        PaymentStatus.EXPIRED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PARTIALLY_PAID: frozenset({PaymentStatus.CONFIRMED}),
}


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class PaymentStateMachine:
    """Derived predicates over a :class:`Payment` snapshot."""

    @staticmethod
    def is_paid(payment: Payment) -> bool:
        return payment.status is PaymentStatus.CONFIRMED

    @staticmethod
    def is_partially_paid(payment: Payment) -> bool:
        return payment.status is PaymentStatus.PARTIALLY_PAID

    @staticmethod
    def is_expired(payment: Payment, now: Optional[datetime] = None) -> bool:
        """EXPIRED, or still open past ``expires_at``.

        The second case covers the window before the service publishes the
        terminal status.
        """
        if payment.status is PaymentStatus.EXPIRED:
            return True
        if payment.status in OPEN_STATUSES and payment.expires_at is not None:
            return _now(now) >= payment.expires_at
        return False

    @staticmethod
    def is_final(payment: Payment) -> bool:
        return payment.status in FINAL_STATUSES

    @classmethod
    def progress(cls, payment: Payment) -> float:
        """Share of ``amount`` confirmed so far, clamped to [0, 1]."""
        if cls.is_paid(payment):
            return 1.0
        if payment.amount_paid is None or payment.amount is None or payment.amount <= 0:
            return 0.0
        ratio = payment.amount_paid / payment.amount
        return float(min(max(ratio, Decimal(0)), Decimal(1)))

    @staticmethod
    def can_transition(src: PaymentStatus, dst: PaymentStatus) -> bool:
        if src is dst:
            return True
        return dst in TRANSITIONS.get(src, frozenset())
