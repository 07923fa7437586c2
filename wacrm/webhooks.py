"""
File: wacrm/webhooks.py
Path: wacrm/webhooks.py

Project: SendSales WhatsApp CRM

Purpose:
Inbound WhatsApp webhook handler (Meta Cloud API + Evolution, one endpoint).

Notes:
- ALWAYS 200 (plain text) so providers never retry-storm, including
  unparseable bodies, unroutable payloads and internal errors
- The only non-200 is 401 when WEBHOOK_SECRET is set and X-Webhook-Secret
  is missing or wrong
- Optional ?provider=meta|evolution skips structural provider sniffing
- All pipeline logic lives in services.webhook_processor
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from wacrm.config import Settings, get_settings
from wacrm.db import SessionLocal, get_db
from wacrm.inbound import detect_provider
from wacrm.security import shared_secret_valid
from wacrm.services.debug_sink import (
    DROP_INVALID_JSON,
    DROP_PROCESSING_ERROR,
    BackgroundDebugSink,
    DebugEvent,
    DebugSink,
    SqlDebugSink,
    truncate_sample,
)
from wacrm.services.tenant_config import SqlTenantConfigProvider
from wacrm.services.tenant_resolver import TenantResolver
from wacrm.services.webhook_processor import RESPONSE_OK, WebhookProcessor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger("webhooks")

RESPONSE_INTERNAL_ERROR = "Internal Error"

# Non-JSON bodies are kept for forensics, capped
RAW_BODY_CAPTURE_CHARS = 10_000


def get_debug_sink(background_tasks: BackgroundTasks) -> DebugSink:
    return BackgroundDebugSink(background_tasks, SqlDebugSink(SessionLocal))


@router.post("/whatsapp", response_class=PlainTextResponse)
async def whatsapp_webhook(
    request: Request,
    provider: Optional[str] = None,
    x_webhook_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    debug_sink: DebugSink = Depends(get_debug_sink),
):
    # ---- Shared secret (only when configured) ----
    if not shared_secret_valid(x_webhook_secret, settings.webhook_secret):
        logger.warning("Rejected webhook: missing or invalid X-Webhook-Secret")
        return PlainTextResponse("Unauthorized", status_code=status.HTTP_401_UNAUTHORIZED)

    # ---- Parse body ----
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError):
        logger.warning("Webhook body is not decodable JSON (%d bytes)", len(raw))
        debug_sink.record(
            DebugEvent(
                drop_reason=DROP_INVALID_JSON,
                provider=provider,
                raw_payload=truncate_sample(
                    raw.decode("utf-8", errors="replace"), RAW_BODY_CAPTURE_CHARS
                ),
            )
        )
        return PlainTextResponse(RESPONSE_OK)

    # ---- Pipeline (blocking DB work, kept off the event loop) ----
    processor = WebhookProcessor(
        db,
        resolver=TenantResolver(db, SqlTenantConfigProvider(db)),
        debug_sink=debug_sink,
        sample_chars=settings.debug_sample_chars,
    )

    try:
        result = await run_in_threadpool(processor.process, payload, provider_hint=provider)
    except Exception:
        await run_in_threadpool(db.rollback)
        logger.exception("Webhook Error")
        debug_sink.record(
            DebugEvent(
                drop_reason=DROP_PROCESSING_ERROR,
                provider=provider or detect_provider(payload),
                raw_payload=payload,
            )
        )
        # Always 200 to avoid provider retry storms; logs are the source of truth
        return PlainTextResponse(RESPONSE_INTERNAL_ERROR)

    logger.info(
        "Webhook handled: provider=%s parsed=%d inserted=%d duplicates=%d failed=%d drop=%s",
        result.provider,
        result.parsed,
        result.inserted,
        result.duplicates,
        result.failed,
        result.drop_reason,
    )
    return PlainTextResponse(result.response_text)
