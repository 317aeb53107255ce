"""HMAC helpers for plugins that want signed webhooks."""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping

from udl.webhooks.types import SignatureVerifier

DEFAULT_SIGNATURE_HEADER = "x-udl-signature"
DEFAULT_SIGNATURE_PREFIX = "sha256="


def sign_payload(payload_bytes: bytes, secret: str) -> str:
    """Compute HMAC-SHA256 hex digest for *payload_bytes* using *secret*."""
    return hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()


def create_hmac_verifier(
    secret: str,
    header: str = DEFAULT_SIGNATURE_HEADER,
    prefix: str = DEFAULT_SIGNATURE_PREFIX,
) -> SignatureVerifier:
    """Build a ``verify_signature`` callable for a webhook registration.

    The returned function expects ``<header>: <prefix><hex digest>`` and
    compares in constant time. A missing header fails verification.
    """
    if not secret:
        raise ValueError("HMAC secret must not be empty")
    header_name = header.lower()

    def verify_signature(raw_body: bytes, headers: Mapping[str, str]) -> bool:
        received = {k.lower(): v for k, v in headers.items()}.get(header_name)
        if not received or not received.startswith(prefix):
            return False
        expected = sign_payload(raw_body, secret)
        return hmac.compare_digest(received[len(prefix):], expected)

    return verify_signature
