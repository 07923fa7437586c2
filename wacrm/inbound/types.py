"""
SendSales WhatsApp CRM
Inbound normalization - shared types

ParsedIncoming is the only shape the rest of the pipeline sees.
Provider payload variability must not leak past the parsers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

PROVIDER_META = "meta"
PROVIDER_EVOLUTION = "evolution"

META_OBJECT = "whatsapp_business_account"

META_MEDIA_PLACEHOLDER = "[Mídia/Outro formato]"
EVOLUTION_MEDIA_PLACEHOLDER = "[Mensagem Complexa/Mídia]"


def normalize_phone(raw: Any) -> str:
    """Digits only. No country-code handling."""
    return re.sub(r"\D", "", str(raw or ""))


@dataclass(frozen=True)
class ParsedIncoming:
    """
    One inbound message, normalized.

    - phone is digits only
    - timestamp is timezone-aware UTC
    - external_id is the provider message id used for idempotency (may be None)
    """
    provider: str
    phone: str
    name: str
    content: str
    timestamp: datetime
    external_id: Optional[str] = None
    instance_name: Optional[str] = None

    media_type: Optional[str] = None
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    caption: Optional[str] = None

    raw: Optional[dict] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ParsedBatch:
    """
    Result of parsing one webhook delivery.

    phone_number_id / instance_name are routing hints for tenant resolution.
    """
    provider: str
    messages: tuple[ParsedIncoming, ...] = ()
    event_type: Optional[str] = None
    phone_number_id: Optional[str] = None
    instance_name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    @property
    def has_routing_hint(self) -> bool:
        return bool(self.phone_number_id or self.first_instance_name())

    def first_instance_name(self) -> Optional[str]:
        if self.instance_name:
            return self.instance_name
        return next((m.instance_name for m in self.messages if m.instance_name), None)

    def phones(self) -> list[str]:
        seen: list[str] = []
        for m in self.messages:
            if m.phone and m.phone not in seen:
                seen.append(m.phone)
        return seen
