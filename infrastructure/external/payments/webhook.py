"""
Webhook verification and decoding.

Order matters: the signature is checked over the raw bytes before a single
field is decoded, so nothing downstream ever sees unverified data.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from application.dtos.payments import WebhookPayload
from core.logging_config import get_logger
from domain.common.exceptions import ConfigurationException
from domain.payment.entity import WebhookEvent
from infrastructure.external.payments.codec import decode_json
from infrastructure.external.payments.exceptions import (
    PaymentPayloadError,
    PaymentSignatureError,
    WebhookReplayError,
)
from infrastructure.external.payments.signature import SignatureVerifier


logger = get_logger(__name__)

DEFAULT_SIGNATURE_HEADER = "X-CryptoPay-Signature"


class WebhookParser:
    provider = "cryptopay"

    def __init__(
        self,
        secret: Optional[str],
        *,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        tolerance_seconds: Optional[int] = None,
        verifier: SignatureVerifier | None = None,
    ) -> None:
        self._secret = secret or None
        self.signature_header = signature_header
        self.tolerance_seconds = tolerance_seconds
        self._verifier = verifier or SignatureVerifier()

    def parse(self, raw_body: bytes, provided_signature: Optional[str], *, now: Optional[datetime] = None) -> WebhookEvent:
        """Verify ``raw_body`` against ``provided_signature`` and decode it.

        Raises:
            ConfigurationException: no webhook secret configured
            PaymentSignatureError: signature missing or wrong
            WebhookReplayError: event outside the replay window
            PaymentPayloadError: authentic body with a malformed structure
        """
        if not self._secret:
            raise ConfigurationException(
                "Webhook secret is not configured; refusing to accept webhooks",
                setting="webhook_secret",
            )
        if not provided_signature:
            logger.warning("webhook_signature_missing", provider=self.provider)
            raise PaymentSignatureError("Missing webhook signature", provider=self.provider)
        if not self._verifier.verify(raw_body, provided_signature, self._secret):
            logger.warning("webhook_signature_invalid", provider=self.provider, body_size=len(raw_body or b""))
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)

        payload = decode_json(WebhookPayload, bytes(raw_body), provider=self.provider, source="webhook payload")
        self._check_replay_window(payload, now)
        event = payload.to_entity()
        logger.info(
            "webhook_verified",
            provider=self.provider,
            webhook_event=event.event,
            payment_id=event.payment.id,
            status=event.payment.status.value,
        )
        return event

    def parse_request(self, headers: Mapping[str, Any], raw_body: bytes, *, now: Optional[datetime] = None) -> WebhookEvent:
        """Like :meth:`parse`, taking the signature from ``headers``."""
        return self.parse(raw_body, self.signature_from(headers), now=now)

    def signature_from(self, headers: Mapping[str, Any]) -> Optional[str]:
        wanted = self.signature_header.lower()
        for name, value in headers.items():
            if str(name).lower() == wanted:
                return value
        return None

    def _check_replay_window(self, payload: WebhookPayload, now: Optional[datetime]) -> None:
        if self.tolerance_seconds is None:
            return
        if payload.timestamp is None:
            raise PaymentPayloadError(
                "Webhook timestamp is required when a replay window is configured",
                provider=self.provider,
                field="timestamp",
            )
        ts = payload.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        current = now or datetime.now(timezone.utc)
        age = abs((current - ts).total_seconds())
        if age > self.tolerance_seconds:
            logger.warning("webhook_outside_replay_window", provider=self.provider, age_seconds=age)
            raise WebhookReplayError(
                provider=self.provider,
                age_seconds=age,
                tolerance_seconds=self.tolerance_seconds,
            )
