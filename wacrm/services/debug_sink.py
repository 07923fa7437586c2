"""
SendSales WhatsApp CRM
Webhook debug sink

Best-effort record of why a delivery was dropped, for operational diagnosis
and forensic replay.

Contract:
- record() NEVER raises and never blocks the webhook response
- the webhook_debug_events table may not be provisioned; writes are then
  silently skipped
- writes use their own session so a failure cannot poison the request session
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from wacrm.models import WebhookDebugEvent

logger = logging.getLogger("debug_sink")

DROP_PARSED_ZERO = "parsed_zero_messages"
DROP_ORG_NOT_RESOLVED = "org_not_resolved"
DROP_INVALID_JSON = "invalid_json"
DROP_PROCESSING_ERROR = "processing_error"

DEFAULT_SAMPLE_CHARS = 200


def truncate_sample(text: Optional[str], limit: int = DEFAULT_SAMPLE_CHARS) -> Optional[str]:
    if text is None:
        return None
    return text if len(text) <= limit else text[:limit]


@dataclass(frozen=True)
class DebugEvent:
    drop_reason: str
    provider: Optional[str] = None
    event_type: Optional[str] = None
    instance_name: Optional[str] = None
    phone: Optional[str] = None
    external_id: Optional[str] = None
    parsed_count: int = 0
    content_sample: Optional[str] = None
    raw_payload: Any = None


class DebugSink(Protocol):
    def record(self, event: DebugEvent) -> None:
        ...


class NullDebugSink:
    def record(self, event: DebugEvent) -> None:
        return None


class SqlDebugSink:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(self, event: DebugEvent) -> None:
        try:
            session = self._session_factory()
        except Exception:
            logger.debug("Debug sink unavailable (no session)", exc_info=True)
            return

        try:
            session.add(WebhookDebugEvent(**asdict(event)))
            session.commit()
        except Exception:
            # Typically: table not provisioned yet
            session.rollback()
            logger.debug("Debug event dropped (%s)", event.drop_reason, exc_info=True)
        finally:
            session.close()


class BackgroundDebugSink:
    """Defers writes until after the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, sink: DebugSink) -> None:
        self._background_tasks = background_tasks
        self._sink = sink

    def record(self, event: DebugEvent) -> None:
        try:
            self._background_tasks.add_task(self._sink.record, event)
        except Exception:
            logger.debug("Debug event could not be scheduled", exc_info=True)
