"""
Payment DTOs (Pydantic v2) used at application boundaries.

Request models are what the application hands to the client; the ``*Data``
models describe the service's JSON (camelCase on the wire) and convert into
domain entities.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from domain.payment.entity import (
    MerchantBalance,
    Payment,
    PaymentStatus,
    WebhookEvent,
    Withdrawal,
)
from shared.codes.payment_codes import SERVICE_STATUS_TO_INTERNAL


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CreatePayment(_WireModel):
    amount: Decimal
    currency: str = Field(default="USD")
    order_id: Optional[str] = None
    description: Optional[str] = None
    expires_in: Optional[int] = None  # seconds, 60..86400
    chain: Optional[str] = None
    token: Optional[str] = None
    callback_url: Optional[str] = None
    return_url: Optional[str] = None
    reward_amount: Optional[Decimal] = None
    reward_currency: Optional[str] = None
    reward_data: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    # sent as a header, never in the body
    idempotency_key: Optional[str] = Field(default=None, exclude=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return (v or "").strip().upper()

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WithdrawalRequest(_WireModel):
    chain: str
    amount: Decimal
    currency: str
    address: str
    memo: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentData(_WireModel):
    id: str = Field(min_length=1)
    status: PaymentStatus
    amount: Decimal
    currency: str = Field(min_length=1)
    tx_hash: Optional[str] = None
    reward_amount: Optional[Decimal] = Field(default=None, ge=0)
    reward_currency: Optional[str] = None
    reward_data: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    amount_paid: Optional[Decimal] = None
    chain: Optional[str] = None
    token: Optional[str] = None
    pay_address: Optional[str] = None
    crypto_amount: Optional[Decimal] = None
    checkout_url: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if not isinstance(v, str):
            raise ValueError("status must be a string")
        mapped = SERVICE_STATUS_TO_INTERNAL.get(v.strip().lower())
        if mapped is None:
            raise ValueError(f"unknown payment status '{v}'")
        return mapped

    def to_entity(self) -> Payment:
        return Payment(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            status=self.status,
            created_at=self.created_at,
            expires_at=self.expires_at,
            confirmed_at=self.confirmed_at,
            tx_hash=self.tx_hash,
            reward_amount=self.reward_amount,
            reward_currency=self.reward_currency,
            reward_data=self.reward_data,
            metadata=self.metadata or {},
            amount_paid=self.amount_paid,
            chain=self.chain,
            token=self.token,
            pay_address=self.pay_address,
            crypto_amount=self.crypto_amount,
            checkout_url=self.checkout_url,
        )


class WebhookPaymentData(PaymentData):
    # notifications only guarantee id and status
    amount: Optional[Decimal] = None
    currency: Optional[str] = Field(default=None, min_length=1)


class WebhookPayload(_WireModel):
    event: str = Field(min_length=1)
    payment: WebhookPaymentData
    timestamp: Optional[datetime] = None

    def to_entity(self) -> WebhookEvent:
        return WebhookEvent(
            event=self.event,
            payment=self.payment.to_entity(),
            timestamp=self.timestamp,
        )


class MerchantBalanceData(_WireModel):
    chain: str
    currency: str
    available: Decimal
    pending: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None

    def to_entity(self) -> MerchantBalance:
        return MerchantBalance(
            chain=self.chain,
            currency=self.currency,
            available=self.available,
            pending=self.pending,
            updated_at=self.updated_at,
        )


class WithdrawalData(_WireModel):
    id: str = Field(min_length=1)
    chain: str
    amount: Decimal
    currency: str
    address: str
    status: str
    tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_entity(self) -> Withdrawal:
        return Withdrawal(
            id=self.id,
            chain=self.chain,
            amount=self.amount,
            currency=self.currency,
            address=self.address,
            status=self.status,
            tx_hash=self.tx_hash,
            created_at=self.created_at,
        )
