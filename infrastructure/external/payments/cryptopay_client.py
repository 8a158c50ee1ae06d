"""
CryptoPay REST adapter implementing the PaymentGateway port.

Endpoints used:
- ``POST /payments``            create a payment (``Idempotency-Key`` header)
- ``GET  /payments/{id}``       fetch the current snapshot
- ``GET  /balances/{chain}``    merchant balance per chain
- ``POST /withdrawals``         request a withdrawal

Creation is only retried when an idempotency key is attached; without one a
retried POST could create a second payment.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import quote

import httpx

from application.dtos.payments import (
    CreatePayment,
    MerchantBalanceData,
    PaymentData,
    WithdrawalData,
    WithdrawalRequest,
)
from application.services.payment_policies import IDEMPOTENCY_HEADER
from core.config import ClientSettings
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import MerchantBalance, Payment, Withdrawal
from infrastructure.external.api_clients.base import BaseAPIClient
from infrastructure.external.payments.codec import decode_response


logger = get_logger(__name__)


class CryptoPayClient(BaseAPIClient):
    provider = "cryptopay"

    def __init__(
        self,
        settings: ClientSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        api_key = settings.require_api_key()
        super().__init__(
            base_url=settings.resolved_base_url,
            timeout=settings.timeout,
            max_retries=settings.retry.max,
            retry_delay=settings.retry.base_backoff,
            auth_token=api_key,
            debug=settings.debug,
            transport=transport,
        )
        if not api_key.startswith(settings.expected_key_prefix):
            logger.warning(
                "api_key_environment_mismatch",
                provider=self.provider,
                environment=settings.environment.value,
                expected_prefix=settings.expected_key_prefix,
            )

    async def create_payment(self, req: CreatePayment) -> Payment:
        headers = {}
        if req.idempotency_key is not None:
            headers[IDEMPOTENCY_HEADER] = req.idempotency_key
        response = await self.post(
            "payments",
            json_data=req.to_wire(),
            headers=headers,
            retryable=req.idempotency_key is not None,
        )
        payment = decode_response(PaymentData, response, provider=self.provider, source="payment response").to_entity()
        self._log("payment_created", payment_id=payment.id, status=payment.status.value, request_id=response.request_id)
        return payment

    async def get_payment(self, payment_id: str) -> Payment:
        response = await self.get(f"payments/{_segment('payment_id', payment_id)}")
        return decode_response(PaymentData, response, provider=self.provider, source="payment response").to_entity()

    async def get_balance(self, chain: str) -> MerchantBalance:
        response = await self.get(f"balances/{_segment('chain', chain)}")
        return decode_response(MerchantBalanceData, response, provider=self.provider, source="balance response").to_entity()

    async def request_withdrawal(self, req: WithdrawalRequest) -> Withdrawal:
        # withdrawals move funds: never retried blindly
        response = await self.post("withdrawals", json_data=req.to_wire(), retryable=False)
        withdrawal = decode_response(WithdrawalData, response, provider=self.provider, source="withdrawal response").to_entity()
        self._log("withdrawal_requested", withdrawal_id=withdrawal.id, chain=withdrawal.chain, status=withdrawal.status)
        return withdrawal

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)


def _segment(name: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DomainValidationException(
            f"{name} must be a non-empty string",
            field=name,
            expected="non-empty string",
            received=value,
        )
    return quote(value.strip(), safe="")
