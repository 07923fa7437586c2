"""
File: wacrm/inbound/meta.py

Project: SendSales WhatsApp CRM

Purpose:
Meta WhatsApp Cloud API webhook parsing.

Rules:
- Walk every entry[].changes[].value
- Status callbacks (sent / delivered / read) carry no messages and are ignored
- Text body first, then media caption, then a generic placeholder
- No I/O, never raises on well-formed JSON
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator, Optional

from .timestamps import coerce_timestamp
from .types import (
    META_MEDIA_PLACEHOLDER,
    PROVIDER_META,
    ParsedBatch,
    ParsedIncoming,
    normalize_phone,
)

logger = logging.getLogger("inbound.meta")

MEDIA_TYPES = ("image", "video", "document", "audio", "sticker")


def _text(value: Any) -> Optional[str]:
    """Non-empty strings only; other JSON types never reach ParsedIncoming."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def _iter_values(payload: dict) -> Iterator[dict]:
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        changes = entry.get("changes")
        if not isinstance(changes, list):
            continue
        for change in changes:
            if isinstance(change, dict) and isinstance(change.get("value"), dict):
                yield change["value"]


def _contact_name(contacts: Any, wa_id: str) -> Optional[str]:
    if not isinstance(contacts, list) or not contacts:
        return None

    matched = next(
        (
            c for c in contacts
            if isinstance(c, dict) and normalize_phone(c.get("wa_id")) == wa_id
        ),
        None,
    )
    contact = matched or contacts[0]
    if not isinstance(contact, dict):
        return None

    profile = contact.get("profile")
    if isinstance(profile, dict):
        name = profile.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def _media_fields(message: dict) -> dict:
    for media_type in MEDIA_TYPES:
        media = message.get(media_type)
        if isinstance(media, dict):
            return {
                "media_type": media_type,
                "mime_type": _text(media.get("mime_type")),
                "file_name": _text(media.get("filename")),
                "caption": _text(media.get("caption")),
            }
    return {}


def _parse_message(
    message: dict,
    *,
    contacts: Any,
    now: datetime,
) -> Optional[ParsedIncoming]:
    phone = normalize_phone(message.get("from"))
    if not phone:
        return None

    text = message.get("text")
    body = _text(text.get("body")) if isinstance(text, dict) else None

    media = _media_fields(message)
    content = body or media.get("caption") or META_MEDIA_PLACEHOLDER

    name = _contact_name(contacts, phone) or phone
    external_id = message.get("id")
    if isinstance(external_id, bool) or not isinstance(external_id, (str, int)):
        external_id = None

    return ParsedIncoming(
        provider=PROVIDER_META,
        phone=phone,
        name=name,
        content=content,
        timestamp=coerce_timestamp(message.get("timestamp"), now),
        external_id=str(external_id) if external_id else None,
        raw=message,
        **media,
    )


def parse_meta_payload(payload: Any, now: datetime) -> ParsedBatch:
    if not isinstance(payload, dict):
        return ParsedBatch(provider=PROVIDER_META)

    phone_number_id: Optional[str] = None
    messages: list[ParsedIncoming] = []
    event_type: Optional[str] = None

    for value in _iter_values(payload):
        metadata = value.get("metadata")
        if phone_number_id is None and isinstance(metadata, dict):
            phone_number_id = metadata.get("phone_number_id") or None

        raw_messages = value.get("messages")
        if not isinstance(raw_messages, list) or not raw_messages:
            if event_type is None and value.get("statuses"):
                event_type = "statuses"
            continue

        event_type = "messages"
        for message in raw_messages:
            if not isinstance(message, dict):
                continue
            try:
                parsed = _parse_message(message, contacts=value.get("contacts"), now=now)
            except Exception:
                logger.exception("Meta message skipped (id=%r)", message.get("id"))
                continue
            if parsed is not None:
                messages.append(parsed)

    return ParsedBatch(
        provider=PROVIDER_META,
        messages=tuple(messages),
        event_type=event_type,
        phone_number_id=str(phone_number_id) if phone_number_id else None,
    )
