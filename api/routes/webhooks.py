"""
Webhook receiver route.

Keep this thin: the route hands the raw, unparsed body to the service and
acknowledges once the application's handler has returned. Any JSON parsing
before verification would break the signature.
"""
from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import APIRouter, Request

from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.entity import WebhookEvent


logger = get_logger(__name__)

WebhookHandler = Callable[[WebhookEvent], Awaitable[None]]


def build_webhook_router(
    service: PaymentService,
    handler: WebhookHandler,
    *,
    path: str = "/webhooks/cryptopay",
) -> APIRouter:
    """Return a router with a single POST ``path`` route.

    Mount it on an app that called ``core.exceptions.register_exception_handlers``
    so that rejected webhooks get 401/400/500 responses.
    """
    router = APIRouter(tags=["Webhooks"])

    @router.post(path)
    async def receive_webhook(request: Request):
        raw_body = await request.body()
        event = service.handle_webhook_request(dict(request.headers), raw_body)
        await handler(event)
        logger.info(
            "webhook_handled",
            webhook_event=event.event,
            payment_id=event.payment.id,
            status=event.payment.status.value,
        )
        return success_response(
            data={"event": event.event, "payment_id": event.payment.id},
            message="Webhook received",
        ).model_dump(mode="json")

    return router
