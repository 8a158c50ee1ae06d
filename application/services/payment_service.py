"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port, the webhook
parser and the request policies. Concrete adapters are injected by the
composition root (see ``infrastructure.external.payments.create_payment_service``).
The service keeps no per-call state, so one instance can serve concurrent
calls.
"""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional, Protocol

from application.dtos.payments import CreatePayment, WithdrawalRequest
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_policies import (
    IdempotencyGuard,
    RewardLockPolicy,
    validate_create_request,
)
from application.services.payment_waiter import PaymentWaiter
from core.config import WaitSettings
from core.logging_config import get_logger
from domain.common.exceptions import ConfigurationException, DomainValidationException
from domain.payment.entity import MerchantBalance, Payment, WebhookEvent, Withdrawal


logger = get_logger(__name__)


class WebhookVerifier(Protocol):
    def parse(self, raw_body: bytes, provided_signature: Optional[str]) -> WebhookEvent: ...

    def parse_request(self, headers: Mapping[str, Any], raw_body: bytes) -> WebhookEvent: ...


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        webhook_parser: Optional[WebhookVerifier] = None,
        wait_settings: Optional[WaitSettings] = None,
        idempotency_guard: Optional[IdempotencyGuard] = None,
    ) -> None:
        self.gateway = gateway
        self.webhook_parser = webhook_parser
        self.wait_settings = wait_settings or WaitSettings()
        self.idempotency_guard = idempotency_guard or IdempotencyGuard()
        self.waiter = PaymentWaiter(
            self.get_payment,
            accept_partial=self.wait_settings.accept_partial,
        )

    async def create_payment(self, req: CreatePayment, idempotency_key: Optional[str] = None) -> Payment:
        """Create a payment; all checks run before the request is sent."""
        validate_create_request(req)
        RewardLockPolicy.validate(req)
        req = self.idempotency_guard.attach(req, idempotency_key)
        logger.info(
            "payment_create_request",
            provider=self.gateway.provider,
            order_id=req.order_id,
            amount=str(req.amount),
            currency=req.currency,
            idempotent=req.idempotency_key is not None,
        )
        payment = await self.gateway.create_payment(req)
        logger.info(
            "payment_create_response",
            provider=self.gateway.provider,
            payment_id=payment.id,
            status=payment.status.value,
        )
        return payment

    async def get_payment(self, payment_id: str) -> Payment:
        if not isinstance(payment_id, str) or not payment_id.strip():
            raise DomainValidationException(
                "payment_id must be a non-empty string",
                field="payment_id",
                expected="non-empty string",
                received=payment_id,
            )
        return await self.gateway.get_payment(payment_id)

    async def refresh(self, payment: Payment) -> Payment:
        """Re-fetch ``payment`` and check that its reward is unchanged."""
        refreshed = await self.get_payment(payment.id)
        RewardLockPolicy.verify_unchanged(payment, refreshed)
        return refreshed

    async def wait_for_payment(
        self,
        payment_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Payment:
        """Long-poll until paid; defaults come from the wait settings."""
        logger.info("payment_wait_start", payment_id=payment_id)
        return await self.waiter.wait(
            payment_id,
            timeout if timeout is not None else self.wait_settings.timeout,
            poll_interval if poll_interval is not None else self.wait_settings.poll_interval,
            cancel_event=cancel_event,
        )

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookEvent:
        return self._require_parser().parse(raw_body, signature)

    def handle_webhook_request(self, headers: Mapping[str, Any], raw_body: bytes) -> WebhookEvent:
        return self._require_parser().parse_request(headers, raw_body)

    async def get_balance(self, chain: str) -> MerchantBalance:
        logger.info("balance_query_request", provider=self.gateway.provider, chain=chain)
        return await self.gateway.get_balance(chain)

    async def request_withdrawal(self, req: WithdrawalRequest) -> Withdrawal:
        if req.amount.is_nan() or req.amount <= 0:
            raise DomainValidationException(
                "withdrawal amount must be greater than zero",
                field="amount",
                expected="> 0",
                received=str(req.amount),
            )
        logger.info("withdrawal_request", provider=self.gateway.provider, chain=req.chain, amount=str(req.amount))
        return await self.gateway.request_withdrawal(req)

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()

    async def __aenter__(self) -> "PaymentService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _require_parser(self) -> WebhookVerifier:
        if self.webhook_parser is None:
            raise ConfigurationException(
                "No webhook parser configured for this service",
                setting="webhook_secret",
            )
        return self.webhook_parser
