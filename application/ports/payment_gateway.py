"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CreatePayment, WithdrawalRequest
from domain.payment.entity import MerchantBalance, Payment, Withdrawal


@runtime_checkable
class PaymentGateway(Protocol):
    """Transport to the payment service.

    Implementations are async and raise the transport errors of
    ``infrastructure.external.api_clients.base`` on failure.
    """

    provider: str

    async def create_payment(self, req: CreatePayment) -> Payment: ...

    async def get_payment(self, payment_id: str) -> Payment: ...

    async def get_balance(self, chain: str) -> MerchantBalance: ...

    async def request_withdrawal(self, req: WithdrawalRequest) -> Withdrawal: ...
