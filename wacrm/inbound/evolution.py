"""
File: wacrm/inbound/evolution.py

Project: SendSales WhatsApp CRM

Purpose:
Evolution (Baileys gateway) webhook parsing.

The payload shape varies by Evolution version and deployment, so every
semantic field is read through an ordered chain of field paths; the first
path yielding a usable value wins.

Rules:
- Messages sent by the connected account itself (key.fromMe) are skipped
- Candidates without a sender phone or a message object are dropped
- The WhatsApp key id is preferred over any top-level id for idempotency
- A broken candidate never affects its siblings
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from .timestamps import coerce_timestamp
from .types import (
    EVOLUTION_MEDIA_PLACEHOLDER,
    PROVIDER_EVOLUTION,
    ParsedBatch,
    ParsedIncoming,
    normalize_phone,
)

logger = logging.getLogger("inbound.evolution")

Path = Sequence[str]

KEY_PATHS: tuple[Path, ...] = (("key",), ("message", "key"), ("data", "key"))
JID_PATHS: tuple[Path, ...] = (("senderPn",), ("remoteJid",))
CANDIDATE_JID_PATHS: tuple[Path, ...] = (("remoteJid",), ("sender",))
MESSAGE_PATHS: tuple[Path, ...] = (("message",), ("data", "message"))
TEXT_PATHS: tuple[Path, ...] = (
    ("conversation",),
    ("extendedTextMessage", "text"),
)
EXTERNAL_ID_KEY_PATHS: tuple[Path, ...] = (("id",), ("idMessage",))
EXTERNAL_ID_CANDIDATE_PATHS: tuple[Path, ...] = (("messageId",), ("id",))
NAME_PATHS: tuple[Path, ...] = (("pushName",), ("data", "pushName"))
TIMESTAMP_PATHS: tuple[Path, ...] = (
    ("createdAt",),
    ("created_at",),
    ("timestamp",),
    ("messageTimestamp",),
    ("message", "messageTimestamp"),
)
INSTANCE_PATHS: tuple[Path, ...] = (("instance",), ("instanceName",))

# (message key, normalized media type)
MEDIA_KEYS: tuple[tuple[str, str], ...] = (
    ("imageMessage", "image"),
    ("videoMessage", "video"),
    ("documentMessage", "document"),
    ("documentWithCaptionMessage", "document"),
    ("audioMessage", "audio"),
    ("stickerMessage", "sticker"),
)

JID_SUFFIXES = ("@s.whatsapp.net", "@c.us")


# -------------------------------------------------
# Extractor helpers
# -------------------------------------------------

def _dig(obj: Any, path: Path) -> Any:
    current = obj
    for part in path:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _first(obj: Any, paths: Sequence[Path], *, kind: type | tuple = str) -> Any:
    """First value along `paths` that has the wanted type and is not empty."""
    for path in paths:
        value = _dig(obj, path)
        if isinstance(value, bool) and kind is not bool:
            continue
        if isinstance(value, kind) and value not in ("", {}, []):
            return value
    return None


def _instance_from(obj: Any) -> Optional[str]:
    value = _first(obj, INSTANCE_PATHS, kind=(str, dict))
    if isinstance(value, dict):
        value = value.get("instanceName") or value.get("name")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _jid_to_phone(jid: str) -> str:
    bare = jid
    for suffix in JID_SUFFIXES:
        bare = bare.replace(suffix, "")
    bare = bare.split("@", 1)[0]
    bare = bare.split(":", 1)[0]
    return normalize_phone(bare)


def _candidates(body: Any) -> list:
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return []

    data = body.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("messages"), list):
            return data["messages"]
        return [data]
    return [body]


# -------------------------------------------------
# Per-candidate extraction
# -------------------------------------------------

def _extract_media(message: dict) -> dict:
    for key, media_type in MEDIA_KEYS:
        media = message.get(key)
        if not isinstance(media, dict):
            continue
        # documentWithCaptionMessage wraps a regular documentMessage
        inner = _dig(media, ("message", "documentMessage"))
        if isinstance(inner, dict):
            media = inner
        return {
            "media_type": media_type,
            "media_url": _first(media, (("url",),)),
            "mime_type": _first(media, (("mimetype",),)),
            "file_name": _first(media, (("fileName",),)),
            "caption": _first(media, (("caption",),)),
        }
    return {}


def _external_id(item: dict, key: dict) -> Optional[str]:
    value = _first(key, EXTERNAL_ID_KEY_PATHS, kind=(str, int))
    if value is None:
        value = _first(item, EXTERNAL_ID_CANDIDATE_PATHS, kind=(str, int))
    return str(value) if value is not None else None


def _parse_candidate(
    item: Any,
    *,
    batch_instance: Optional[str],
    now: datetime,
) -> Optional[ParsedIncoming]:
    if not isinstance(item, dict):
        return None

    key = _first(item, KEY_PATHS, kind=dict) or {}
    if key.get("fromMe") is True:
        return None

    jid = _first(key, JID_PATHS) or _first(item, CANDIDATE_JID_PATHS) or ""
    phone = _jid_to_phone(jid)
    if not phone:
        return None

    message = _first(item, MESSAGE_PATHS, kind=dict)
    if message is None:
        return None

    media = _extract_media(message)
    text = _first(message, TEXT_PATHS)
    if text:
        content = text
    elif media.get("caption"):
        content = media["caption"]
    elif media:
        content = f"[{media['media_type']}]"
    else:
        content = EVOLUTION_MEDIA_PLACEHOLDER

    name = _first(item, NAME_PATHS)
    name = name.strip() if name and name.strip() else phone

    return ParsedIncoming(
        provider=PROVIDER_EVOLUTION,
        phone=phone,
        name=name,
        content=content,
        timestamp=coerce_timestamp(_first(item, TIMESTAMP_PATHS, kind=(str, int, float)), now),
        external_id=_external_id(item, key),
        instance_name=_instance_from(item) or batch_instance,
        raw=item,
        **media,
    )


def parse_evolution_payload(body: Any, now: datetime) -> ParsedBatch:
    batch_instance: Optional[str] = None
    event_type: Optional[str] = None

    if isinstance(body, dict):
        batch_instance = _instance_from(body) or _instance_from(body.get("data"))
        event = body.get("event") or body.get("type")
        event_type = str(event) if event else None

    messages: list[ParsedIncoming] = []
    for item in _candidates(body):
        try:
            parsed = _parse_candidate(item, batch_instance=batch_instance, now=now)
        except Exception:
            logger.exception("Evolution candidate skipped (event=%s)", event_type)
            continue
        if parsed is not None:
            messages.append(parsed)

    return ParsedBatch(
        provider=PROVIDER_EVOLUTION,
        messages=tuple(messages),
        event_type=event_type,
        instance_name=batch_instance,
    )
