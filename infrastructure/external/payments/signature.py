"""
HMAC-SHA256 webhook signatures.

The MAC is always computed over the raw request bytes exactly as received;
re-encoding the JSON (key order, whitespace) would change them.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from domain.common.exceptions import ConfigurationException


DIGEST = hashlib.sha256
_DIGEST_SIZE = DIGEST().digest_size
_SCHEME_PREFIX = "sha256="


class SignatureVerifier:
    """Computes and checks webhook MACs.

    Comparison is constant-time over the decoded digests. Anything that is
    not a well-formed hex digest of the right length is rejected.
    """

    @staticmethod
    def compute(raw_body: bytes, secret: str) -> str:
        _require_secret(secret)
        return hmac.new(secret.encode("utf-8"), raw_body, DIGEST).hexdigest()

    @staticmethod
    def verify(raw_body: bytes, provided_signature: Optional[str], secret: Optional[str]) -> bool:
        _require_secret(secret)
        if not isinstance(raw_body, (bytes, bytearray, memoryview)):
            return False
        if not isinstance(provided_signature, str):
            return False
        candidate = provided_signature.strip()
        if candidate[:len(_SCHEME_PREFIX)].lower() == _SCHEME_PREFIX:
            candidate = candidate[len(_SCHEME_PREFIX):]
        if len(candidate) != _DIGEST_SIZE * 2:
            return False
        try:
            provided = bytes.fromhex(candidate)
        except ValueError:
            return False
        expected = hmac.new(secret.encode("utf-8"), bytes(raw_body), DIGEST).digest()
        return hmac.compare_digest(expected, provided)


def _require_secret(secret: Optional[str]) -> None:
    if not isinstance(secret, str) or not secret:
        raise ConfigurationException(
            "Webhook secret is not configured; cannot verify signatures",
            setting="webhook_secret",
        )
