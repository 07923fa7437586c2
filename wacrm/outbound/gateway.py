"""
SendSales WhatsApp CRM
Outbound delivery abstraction

This module defines a stable SendGateway interface and strongly-typed
request/receipt objects for outbound delivery.

Guardrails:
- Sending is request/response: a failed send raises OutboundDeliveryError
- The webhook pipeline never sends
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol


class OutboundDeliveryError(RuntimeError):
    pass


class NoProviderConfigured(OutboundDeliveryError):
    pass


class SendStatus(str, Enum):
    DRY_RUN = "dry_run"
    SENT = "sent"


@dataclass(frozen=True)
class OutboundSendRequest:
    """
    One message to deliver.

    - to_number is digits only (e.g. 5511999999999)
    - message_type "text" uses body_text; "media" uses the media fields
    - media is a public URL or base64 content
    """
    to_number: str
    body_text: Optional[str] = None
    message_type: str = "text"

    media: Optional[str] = None
    media_type: Optional[str] = None  # image / video / document
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    file_name: Optional[str] = None
    delay: Optional[int] = None

    @property
    def is_media(self) -> bool:
        return self.message_type == "media"


@dataclass(frozen=True)
class OutboundSendReceipt:
    """
    Result of a delivery attempt (or simulated attempt).
    """
    status: SendStatus
    provider: str
    provider_message_id: Optional[str]
    detail: str
    created_at_utc: datetime

    @staticmethod
    def now(
        status: SendStatus,
        provider: str,
        detail: str,
        provider_message_id: Optional[str] = None,
    ) -> "OutboundSendReceipt":
        return OutboundSendReceipt(
            status=status,
            provider=provider,
            provider_message_id=provider_message_id,
            detail=detail,
            created_at_utc=datetime.now(timezone.utc),
        )


class SendGateway(Protocol):
    """
    Abstract gateway for outbound delivery.
    """
    provider: str

    def send(self, req: OutboundSendRequest) -> OutboundSendReceipt:
        """
        Deliver a WhatsApp message (or simulate it, depending on gateway).
        Raises OutboundDeliveryError when the provider rejects it.
        """
        ...


def extract_provider_message_id(data: Any) -> Optional[str]:
    """Best-effort message id from an Evolution or Meta send response."""
    if not isinstance(data, dict):
        return None

    key = data.get("key")
    nested_key = data.get("data", {}).get("key") if isinstance(data.get("data"), dict) else None
    messages = data.get("messages")

    candidates = (
        key.get("id") if isinstance(key, dict) else None,
        data.get("messageId"),
        data.get("id"),
        nested_key.get("id") if isinstance(nested_key, dict) else None,
        messages[0].get("id") if isinstance(messages, list) and messages and isinstance(messages[0], dict) else None,
    )
    value = next((c for c in candidates if c), None)
    return str(value) if value else None
