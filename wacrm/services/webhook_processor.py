"""
SendSales WhatsApp CRM
WebhookProcessor

Responsibilities:
- Accept a JSON-decoded inbound webhook payload (Meta or Evolution)
- parse -> resolve organization -> per message: lead upsert, conversation ingestion
- Record every drop in the debug sink
- Never deal with HTTP, FastAPI, or responses

Error policy:
- One message failing never blocks its siblings
- Resolution/storage outages propagate; the HTTP layer still acknowledges with 200
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from wacrm.inbound import ParsedBatch, ParsedIncoming, parse_payload
from wacrm.services.conversation_service import INGEST_DUPLICATE, ingest_message
from wacrm.services.debug_sink import (
    DEFAULT_SAMPLE_CHARS,
    DROP_ORG_NOT_RESOLVED,
    DROP_PARSED_ZERO,
    DebugEvent,
    DebugSink,
    truncate_sample,
)
from wacrm.services.leads_service import upsert_lead
from wacrm.services.tenant_resolver import TenantResolver

logger = logging.getLogger("webhook_processor")

RESPONSE_OK = "OK"
RESPONSE_PROCESSED = "Event processed"


@dataclass
class ProcessingResult:
    response_text: str = RESPONSE_OK
    provider: Optional[str] = None
    parsed: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    organization_id: Optional[uuid.UUID] = None
    drop_reason: Optional[str] = None


class WebhookProcessor:
    def __init__(
        self,
        db: Session,
        *,
        resolver: TenantResolver,
        debug_sink: DebugSink,
        sample_chars: int = DEFAULT_SAMPLE_CHARS,
    ) -> None:
        self._db = db
        self._resolver = resolver
        self._debug_sink = debug_sink
        self._sample_chars = sample_chars

    def process(
        self,
        payload: Any,
        *,
        provider_hint: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ProcessingResult:
        now = now or datetime.now(timezone.utc)
        batch = parse_payload(payload, provider_hint=provider_hint, now=now)
        result = ProcessingResult(provider=batch.provider, parsed=len(batch.messages))

        if batch.is_empty:
            logger.info("No messages parsed (provider=%s event=%s)", batch.provider, batch.event_type)
            result.drop_reason = DROP_PARSED_ZERO
            self._record_drop(batch, payload, DROP_PARSED_ZERO)
            return result

        resolution = self._resolver.resolve(batch)
        if not resolution.resolved:
            first = batch.messages[0]
            logger.warning(
                "Could not resolve organization (provider=%s instance=%s phone=%s event=%s reason=%s)",
                batch.provider,
                batch.first_instance_name(),
                first.phone,
                batch.event_type,
                resolution.reason,
            )
            result.drop_reason = DROP_ORG_NOT_RESOLVED
            self._record_drop(batch, payload, DROP_ORG_NOT_RESOLVED)
            return result

        result.organization_id = resolution.organization_id
        logger.info(
            "Organization %s resolved via %s for %d message(s)",
            resolution.organization_id,
            resolution.method,
            len(batch.messages),
        )

        for message in batch.messages:
            try:
                self._process_message(resolution.organization_id, message, result)
            except Exception:
                self._db.rollback()
                result.failed += 1
                logger.exception(
                    "Failed to store message %s from %s", message.external_id, message.phone
                )

        result.response_text = RESPONSE_PROCESSED
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _process_message(
        self,
        organization_id: uuid.UUID,
        message: ParsedIncoming,
        result: ProcessingResult,
    ) -> None:
        logger.info("Processing message from %s: %s", message.phone, truncate_sample(message.content, 80))

        lead_id = upsert_lead(
            self._db,
            organization_id=organization_id,
            phone=message.phone,
            display_name=message.name,
            activity_at=message.timestamp,
        )
        if lead_id is None:
            result.failed += 1
            logger.warning("No lead for %s, message %s skipped", message.phone, message.external_id)
            return

        outcome = ingest_message(self._db, lead_id=lead_id, message=message)
        if outcome == INGEST_DUPLICATE:
            result.duplicates += 1
            logger.info("Duplicate %s message %s ignored", message.provider, message.external_id)
        else:
            result.inserted += 1

    def _record_drop(self, batch: ParsedBatch, payload: Any, reason: str) -> None:
        first = batch.messages[0] if batch.messages else None
        self._debug_sink.record(
            DebugEvent(
                drop_reason=reason,
                provider=batch.provider,
                event_type=batch.event_type,
                instance_name=batch.first_instance_name(),
                phone=first.phone if first else None,
                external_id=first.external_id if first else None,
                parsed_count=len(batch.messages),
                content_sample=truncate_sample(first.content, self._sample_chars) if first else None,
                raw_payload=payload,
            )
        )
