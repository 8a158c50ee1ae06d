"""
Factory for the payment gateway and the application service.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentService
from core.config import ClientSettings


def get_payment_gateway(
    settings: ClientSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    from .cryptopay_client import CryptoPayClient
    return CryptoPayClient(settings, transport=transport)


def get_webhook_parser(settings: ClientSettings):
    from .webhook import WebhookParser
    return WebhookParser(
        settings.webhook_secret,
        signature_header=settings.webhook.signature_header,
        tolerance_seconds=settings.webhook.tolerance_seconds,
    )


def create_payment_service(
    settings: ClientSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentService:
    """Wire a :class:`PaymentService` from ``settings``.

    The webhook secret is optional here; webhook calls fail with a
    configuration error until it is set.
    """
    return PaymentService(
        get_payment_gateway(settings, transport=transport),
        webhook_parser=get_webhook_parser(settings),
        wait_settings=settings.wait,
    )
