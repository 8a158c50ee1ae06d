"""Pytest bootstrap configuration.

Shared fixtures: settings, a signing helper, wire payload factories and an
in-memory gateway stub.
"""
import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from core.config import ClientSettings, RetrySettings, WaitSettings
from domain.payment.entity import Payment, PaymentStatus


WEBHOOK_SECRET = "whsec_test_secret"
API_KEY = "cp_test_4f1c2d"
BASE_URL = "https://api.test.local/v1"


def _payment_payload(**overrides) -> dict:
    data = {
        "id": "pay_123",
        "amount": "25.00",
        "currency": "USD",
        "status": "PENDING",
        "txHash": None,
        "rewardAmount": "400",
        "rewardCurrency": "coins",
        "rewardData": {"campaign": "spring", "tier": 2},
        "metadata": {"orderId": "ord_1", "user": {"id": 7}},
        "createdAt": "2026-10-19T10:00:00Z",
        "expiresAt": "2026-10-19T11:00:00Z",
        "chain": "polygon",
        "token": "USDC",
    }
    data.update(overrides)
    return data


def _make_payment(status=PaymentStatus.PENDING, **overrides) -> Payment:
    now = datetime.now(timezone.utc)
    fields = dict(
        id="pay_123",
        amount=Decimal("25.00"),
        currency="USD",
        status=status,
        created_at=now,
        expires_at=now + timedelta(hours=1),
        reward_amount=Decimal("400"),
        reward_currency="coins",
        reward_data={"campaign": "spring"},
        metadata={"orderId": "ord_1"},
    )
    fields.update(overrides)
    return Payment(**fields)


class StubGateway:
    """Gateway double recording every call.

    ``snapshots`` are returned by successive ``get_payment`` calls; the last
    one repeats. An exception instance in the list is raised instead.
    """

    provider = "stub"

    def __init__(self, snapshots=None, fetch_delay: float = 0.0):
        self.snapshots = list(snapshots or [])
        self.fetch_delay = fetch_delay
        self.created = []
        self.fetches = []
        self.fetch_times = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def create_payment(self, req):
        self.created.append(req)
        return _make_payment(
            reward_amount=req.reward_amount,
            reward_currency=req.reward_currency,
            reward_data=req.reward_data,
        )

    async def get_payment(self, payment_id):
        self.fetches.append(payment_id)
        self.fetch_times.append(asyncio.get_running_loop().time())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fetch_delay:
                await asyncio.sleep(self.fetch_delay)
            index = min(len(self.fetches), len(self.snapshots)) - 1
            snapshot = self.snapshots[index]
            if isinstance(snapshot, Exception):
                raise snapshot
            return snapshot
        finally:
            self.in_flight -= 1

    async def get_balance(self, chain):
        raise NotImplementedError

    async def request_withdrawal(self, req):
        raise NotImplementedError

    async def aclose(self):
        self.closed = True


class RecordingTransport:
    """Wraps an ``httpx.MockTransport`` and keeps every request sent."""

    def __init__(self, *responses):
        self.requests = []
        self._responses = list(responses)
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        response = self._responses[index]
        if callable(response):
            return response(request)
        if isinstance(response, Exception):
            raise response
        # fresh copy per request; the last response may be served repeatedly
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def settings():
    return ClientSettings(
        _env_file=None,
        api_key=API_KEY,
        webhook_secret=WEBHOOK_SECRET,
        environment="sandbox",
        base_url=BASE_URL,
        retry=RetrySettings(max=2, base_backoff=0.01),
        wait=WaitSettings(timeout=2.0, poll_interval=0.05),
    )


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
        return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return _sign


@pytest.fixture
def payment_payload():
    return _payment_payload


@pytest.fixture
def webhook_body():
    def _body(event="payment.confirmed", timestamp="2026-10-19T10:05:00Z", **payment_overrides) -> bytes:
        payload = {
            "event": event,
            "payment": _payment_payload(**payment_overrides),
        }
        if timestamp is not None:
            payload["timestamp"] = timestamp
        return json.dumps(payload).encode("utf-8")
    return _body


@pytest.fixture
def make_payment():
    return _make_payment


@pytest.fixture
def stub_gateway_factory():
    return StubGateway


@pytest.fixture
def recording_transport():
    return RecordingTransport
