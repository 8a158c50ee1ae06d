import json
from decimal import Decimal

import httpx
import pytest
from structlog.testing import capture_logs

from application.dtos.payments import CreatePayment, WithdrawalRequest
from core.config import ClientSettings
from domain.common.exceptions import ConfigurationException, DomainValidationException
from domain.payment.entity import PaymentStatus
from infrastructure.external.api_clients.base import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteValidationError,
    RequestTimeoutError,
    ServerError,
)
from infrastructure.external.payments.cryptopay_client import CryptoPayClient
from infrastructure.external.payments.exceptions import PaymentPayloadError


def _create_request(**overrides) -> CreatePayment:
    fields = dict(
        amount=Decimal("25.00"),
        currency="USD",
        order_id="ord_1",
        chain="polygon",
        token="USDC",
        reward_amount=Decimal("400"),
        reward_currency="coins",
    )
    fields.update(overrides)
    return CreatePayment(**fields)


@pytest.mark.asyncio
async def test_create_payment_sends_camel_case_body_and_headers(settings, payment_payload, recording_transport):
    recorder = recording_transport(httpx.Response(201, json=payment_payload()))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        payment = await client.create_payment(_create_request(idempotency_key="order-1"))

    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.test.local/v1/payments"
    assert request.headers["Authorization"] == "Bearer cp_test_4f1c2d"
    assert request.headers["Idempotency-Key"] == "order-1"
    body = json.loads(request.content)
    assert body == {
        "amount": "25.00",
        "currency": "USD",
        "orderId": "ord_1",
        "chain": "polygon",
        "token": "USDC",
        "rewardAmount": "400",
        "rewardCurrency": "coins",
    }
    assert payment.id == "pay_123"
    assert payment.status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_create_payment_without_key_sends_no_header(settings, payment_payload, recording_transport):
    recorder = recording_transport(httpx.Response(201, json=payment_payload()))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        await client.create_payment(_create_request())
    assert "Idempotency-Key" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_get_payment_unwraps_data_envelope(settings, payment_payload, recording_transport):
    recorder = recording_transport(
        httpx.Response(200, json={"data": payment_payload(status="paid", amountPaid="25.00")})
    )
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        payment = await client.get_payment("pay_123")

    assert recorder.requests[0].method == "GET"
    assert recorder.requests[0].url.path == "/v1/payments/pay_123"
    assert payment.status is PaymentStatus.CONFIRMED
    assert payment.amount_paid == Decimal("25.00")


@pytest.mark.asyncio
async def test_path_segments_are_escaped(settings, payment_payload, recording_transport):
    recorder = recording_transport(httpx.Response(200, json=payment_payload()))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        await client.get_payment("pay/../admin")
    assert recorder.requests[0].url.raw_path.endswith(b"/payments/pay%2F..%2Fadmin")


@pytest.mark.asyncio
async def test_empty_payment_id_is_rejected_locally(settings, recording_transport):
    recorder = recording_transport(httpx.Response(500))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(DomainValidationException):
            await client.get_payment("  ")
    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [
        (400, RemoteValidationError),
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, NotFoundError),
        (422, RemoteValidationError),
    ],
)
async def test_client_errors_are_classified_and_not_retried(settings, recording_transport, status, error):
    recorder = recording_transport(httpx.Response(status, json={"error": {"message": "nope"}}))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(error) as exc_info:
            await client.get_payment("pay_123")
    assert exc_info.value.status_code == status
    assert exc_info.value.message == "nope"
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_remote_validation_error_keeps_field(settings, recording_transport):
    body = {"error": {"message": "amount below minimum", "field": "amount", "expected": ">= 1"}}
    recorder = recording_transport(httpx.Response(422, json=body))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(RemoteValidationError) as exc_info:
            await client.create_payment(_create_request(idempotency_key="k-1"))
    assert exc_info.value.details["field"] == "amount"
    assert exc_info.value.details["expected"] == ">= 1"


@pytest.mark.asyncio
async def test_transient_errors_are_retried_for_reads(settings, payment_payload, recording_transport):
    recorder = recording_transport(
        httpx.Response(503),
        httpx.Response(502),
        httpx.Response(200, json=payment_payload()),
    )
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        payment = await client.get_payment("pay_123")
    assert payment.id == "pay_123"
    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_retries_are_bounded(settings, recording_transport):
    recorder = recording_transport(httpx.Response(500))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(ServerError):
            await client.get_payment("pay_123")
    assert len(recorder.requests) == settings.retry.max + 1


@pytest.mark.asyncio
async def test_rate_limit_surfaces_after_retries(settings, recording_transport):
    recorder = recording_transport(httpx.Response(429, headers={"Retry-After": "0"}))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(RateLimitError):
            await client.get_payment("pay_123")


@pytest.mark.asyncio
async def test_create_with_key_is_retried(settings, payment_payload, recording_transport):
    recorder = recording_transport(httpx.Response(503), httpx.Response(201, json=payment_payload()))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        await client.create_payment(_create_request(idempotency_key="k-1"))
    assert len(recorder.requests) == 2
    assert {r.headers["Idempotency-Key"] for r in recorder.requests} == {"k-1"}


@pytest.mark.asyncio
async def test_create_without_key_is_never_retried(settings, payment_payload, recording_transport):
    recorder = recording_transport(httpx.Response(503), httpx.Response(201, json=payment_payload()))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(ServerError):
            await client.create_payment(_create_request())
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_network_failure_becomes_network_error(settings, recording_transport):
    recorder = recording_transport(httpx.ConnectError("connection refused"))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(NetworkError):
            await client.get_payment("pay_123")
    assert len(recorder.requests) == settings.retry.max + 1


@pytest.mark.asyncio
async def test_timeout_becomes_request_timeout_error(settings, recording_transport):
    recorder = recording_transport(httpx.ReadTimeout("read timed out"))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(RequestTimeoutError):
            await client.get_payment("pay_123")


@pytest.mark.asyncio
async def test_malformed_response_is_payload_error(settings, recording_transport):
    recorder = recording_transport(httpx.Response(200, json={"id": "pay_123", "status": "PENDING"}))
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(PaymentPayloadError) as exc_info:
            await client.get_payment("pay_123")
    assert exc_info.value.field == "amount"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"<html>gateway</html>", headers={"content-type": "text/html"}),
        httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"}),
    ],
)
async def test_non_json_success_body_is_payload_error(settings, recording_transport, response):
    recorder = recording_transport(response)
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(PaymentPayloadError) as exc_info:
            await client.get_payment("pay_123")
    assert exc_info.value.field is None
    assert exc_info.value.details["received"] == response.headers["content-type"]
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_get_balance(settings, recording_transport):
    recorder = recording_transport(
        httpx.Response(200, json={"chain": "polygon", "currency": "USDC", "available": "100.5", "pending": "2"})
    )
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        balance = await client.get_balance("polygon")
    assert recorder.requests[0].url.path == "/v1/balances/polygon"
    assert balance.available == Decimal("100.5")
    assert balance.pending == Decimal("2")


@pytest.mark.asyncio
async def test_withdrawal_is_never_retried(settings, recording_transport):
    recorder = recording_transport(httpx.Response(503))
    req = WithdrawalRequest(chain="polygon", amount=Decimal("10"), currency="USDC", address="0xdead")
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        with pytest.raises(ServerError):
            await client.request_withdrawal(req)
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_withdrawal_is_decoded(settings, recording_transport):
    recorder = recording_transport(httpx.Response(201, json={
        "id": "wd_1", "chain": "polygon", "amount": "10", "currency": "USDC",
        "address": "0xdead", "status": "queued",
    }))
    req = WithdrawalRequest(chain="polygon", amount=Decimal("10"), currency="USDC", address="0xdead")
    async with CryptoPayClient(settings, transport=recorder.transport) as client:
        withdrawal = await client.request_withdrawal(req)
    assert json.loads(recorder.requests[0].content)["address"] == "0xdead"
    assert withdrawal.id == "wd_1"
    assert withdrawal.status == "queued"


def test_missing_api_key_is_a_configuration_error():
    with pytest.raises(ConfigurationException) as exc_info:
        CryptoPayClient(ClientSettings(_env_file=None, api_key=None))
    assert exc_info.value.field == "api_key"


def test_key_for_other_environment_is_warned_about():
    settings = ClientSettings(_env_file=None, api_key="cp_test_123", environment="production")
    with capture_logs() as logs:
        CryptoPayClient(settings)
    assert any(entry["event"] == "api_key_environment_mismatch" for entry in logs)
