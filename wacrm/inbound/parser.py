"""
SendSales WhatsApp CRM
Inbound payload parser (entry point)

PURE CONVERSION - NO I/O

Selects the provider branch and returns a ParsedBatch.
An empty batch is a legitimate outcome (status callbacks, connection events).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .evolution import parse_evolution_payload
from .meta import parse_meta_payload
from .types import META_OBJECT, PROVIDER_EVOLUTION, PROVIDER_META, ParsedBatch


def detect_provider(body: Any) -> str:
    """Meta payloads carry object == "whatsapp_business_account"; anything else is Evolution."""
    if isinstance(body, dict) and body.get("object") == META_OBJECT:
        return PROVIDER_META
    return PROVIDER_EVOLUTION


def parse_payload(
    body: Any,
    provider_hint: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ParsedBatch:
    """
    Args:
        body: JSON-decoded webhook body (any shape)
        provider_hint: "meta" / "evolution" to skip structural sniffing
        now: ingestion time used when a message has no usable timestamp
    """
    now = now or datetime.now(timezone.utc)

    provider = provider_hint if provider_hint in (PROVIDER_META, PROVIDER_EVOLUTION) else None
    provider = provider or detect_provider(body)

    if provider == PROVIDER_META:
        return parse_meta_payload(body, now)
    return parse_evolution_payload(body, now)
