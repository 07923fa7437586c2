"""
Webhook security checks.

- Meta subscription handshake (hub.mode / hub.verify_token / hub.challenge)
- Optional shared secrets (X-Webhook-Secret on inbound POSTs, X-Api-Key on sends)

No I/O. No side effects.
"""

from __future__ import annotations

import hmac
from typing import Optional

SUBSCRIBE_MODE = "subscribe"


def verify_webhook_challenge(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    expected_token: str,
) -> Optional[str]:
    """
    Returns the challenge to echo back, or None when the handshake must be
    rejected (HTTP 403).
    """
    if mode != SUBSCRIBE_MODE or token is None or not expected_token:
        return None
    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return None
    return challenge or ""


def shared_secret_valid(provided: Optional[str], configured: Optional[str]) -> bool:
    """Every caller passes when no secret is configured."""
    if not configured:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), configured.encode("utf-8"))
