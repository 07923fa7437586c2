"""
File: wacrm/services/conversation_service.py

Project: SendSales WhatsApp CRM

Purpose:
Authoritative writer of conversation entries (the message log).

Responsibilities:
- Idempotent inbound ingestion keyed on (provider, external_id)
- Outbound entry persistence for the dispatcher
- Schema-drift tolerance for optional columns

Design rules:
- Entries are append-only; an existing (provider, external_id) row is never rewritten
- No external_id means no dedup key: the entry is always inserted
- A missing optional column triggers exactly ONE retry without it
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from wacrm.inbound.types import ParsedIncoming
from wacrm.models import ConversationEntry

logger = logging.getLogger("conversation_service")

INGEST_INSERTED = "inserted"
INGEST_DUPLICATE = "duplicate"

SENDER_CONTACT = "contact"
SENDER_USER = "user"

# Columns that older schemas may not have yet
OPTIONAL_COLUMNS = ("raw_payload",)

_MISSING_COLUMN_MARKERS = (
    "does not exist",
    "no column",
    "unknown column",
    "could not find",
)


@dataclass(frozen=True)
class OutboundEntry:
    lead_id: uuid.UUID
    content: str
    provider: str
    external_id: Optional[str] = None
    is_ai_generated: bool = False
    media_type: Optional[str] = None
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    caption: Optional[str] = None


# -------------------------------------------------
# Schema drift
# -------------------------------------------------

def missing_optional_column(exc: Exception) -> Optional[str]:
    """Name of the optional column a database error complains about, if any."""
    message = str(getattr(exc, "orig", None) or exc).lower()
    if not any(marker in message for marker in _MISSING_COLUMN_MARKERS):
        return None
    return next((c for c in OPTIONAL_COLUMNS if c in message), None)


def _insert(db: Session, values: dict[str, Any]) -> None:
    db.execute(insert(ConversationEntry).values(**values))
    db.commit()


def _insert_tolerating_drift(db: Session, values: dict[str, Any]) -> None:
    try:
        _insert(db, values)
    except (ProgrammingError, OperationalError) as exc:
        db.rollback()
        column = missing_optional_column(exc)
        if column is None or column not in values:
            raise

        logger.warning("conversations.%s missing from schema, retrying without it", column)
        _insert(db, {k: v for k, v in values.items() if k != column})


# -------------------------------------------------
# Queries
# -------------------------------------------------

def entry_exists(db: Session, *, provider: str, external_id: str) -> bool:
    return (
        db.query(ConversationEntry.id)
        .filter(
            ConversationEntry.provider == provider,
            ConversationEntry.external_id == external_id,
        )
        .first()
        is not None
    )


# -------------------------------------------------
# Commands
# -------------------------------------------------

def ingest_message(
    db: Session,
    *,
    lead_id: uuid.UUID,
    message: ParsedIncoming,
    capture_raw: bool = True,
) -> str:
    """
    Store one inbound message.

    Returns:
        INGEST_INSERTED  -> a new row was written
        INGEST_DUPLICATE -> (provider, external_id) already stored

    Raises:
        SQLAlchemyError on any other persistence failure (caller isolates it)
    """
    if message.external_id and entry_exists(
        db, provider=message.provider, external_id=message.external_id
    ):
        return INGEST_DUPLICATE

    values: dict[str, Any] = {
        "lead_id": lead_id,
        "content": message.content,
        "sender_type": SENDER_CONTACT,
        "is_ai_generated": False,
        "created_at": message.timestamp,
        "provider": message.provider,
        "external_id": message.external_id,
        "media_type": message.media_type,
        "media_url": message.media_url,
        "mime_type": message.mime_type,
        "file_name": message.file_name,
        "caption": message.caption,
    }
    if capture_raw and message.raw is not None:
        values["raw_payload"] = message.raw

    try:
        _insert_tolerating_drift(db, values)
    except IntegrityError:
        db.rollback()
        # Lost a race against a concurrent delivery of the same message
        if message.external_id and entry_exists(
            db, provider=message.provider, external_id=message.external_id
        ):
            return INGEST_DUPLICATE
        raise

    return INGEST_INSERTED


def record_outbound(db: Session, entry: OutboundEntry) -> None:
    _insert_tolerating_drift(
        db,
        {
            "lead_id": entry.lead_id,
            "content": entry.content,
            "sender_type": SENDER_USER,
            "is_ai_generated": entry.is_ai_generated,
            "provider": entry.provider,
            "external_id": entry.external_id,
            "media_type": entry.media_type,
            "media_url": entry.media_url,
            "mime_type": entry.mime_type,
            "file_name": entry.file_name,
            "caption": entry.caption,
        },
    )
