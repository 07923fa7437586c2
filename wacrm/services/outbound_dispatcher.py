"""
File: wacrm/services/outbound_dispatcher.py

Project: SendSales WhatsApp CRM

Purpose:
Agent/system initiated sends (text or media) for one organization.

Responsibilities:
- Validate the request
- Pick the provider (Evolution before Meta) and send
- On success: find-or-create the lead, log the outbound entry, touch last_active

IMPORTANT:
- Request/response path: provider failures RAISE to the caller
- Persisting the history entry is best-effort once the provider accepted the send
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wacrm.config import Settings
from wacrm.inbound.types import normalize_phone
from wacrm.outbound.factory import build_send_gateway
from wacrm.outbound.gateway import OutboundDeliveryError, OutboundSendRequest
from wacrm.services.conversation_service import OutboundEntry, record_outbound
from wacrm.services.leads_service import find_or_create_outbound_lead, touch_lead
from wacrm.services.tenant_config import TenantConfigProvider

logger = logging.getLogger("outbound_dispatcher")

MEDIA_TYPES = ("image", "video", "document")


class InvalidSendRequest(OutboundDeliveryError):
    pass


class OrganizationNotFound(OutboundDeliveryError):
    pass


@dataclass(frozen=True)
class DispatchResult:
    provider: str
    status: str
    external_id: Optional[str]
    lead_id: Optional[uuid.UUID]


def _validate(req: OutboundSendRequest) -> None:
    if not req.to_number:
        raise InvalidSendRequest("Invalid phone number")

    if req.message_type == "text":
        if not req.body_text:
            raise InvalidSendRequest("message is required for type=text")
        return

    if req.message_type == "media":
        if not req.media or not req.media_type or not req.mime_type:
            raise InvalidSendRequest("media, mediatype and mimetype are required for type=media")
        if req.media_type not in MEDIA_TYPES:
            raise InvalidSendRequest(f"Unsupported mediatype: {req.media_type}")
        return

    raise InvalidSendRequest(f"Unsupported message type: {req.message_type}")


class OutboundDispatcher:
    def __init__(
        self,
        db: Session,
        *,
        config_provider: TenantConfigProvider,
        settings: Settings,
        http_session: Optional[requests.Session] = None,
    ) -> None:
        self._db = db
        self._config = config_provider
        self._settings = settings
        self._http_session = http_session

    def send(self, organization_id: uuid.UUID, req: OutboundSendRequest) -> DispatchResult:
        req = replace(req, to_number=normalize_phone(req.to_number))
        _validate(req)

        config = self._config.get_config(organization_id)
        if config is None:
            raise OrganizationNotFound("Organization settings not found")

        gateway = build_send_gateway(config, settings=self._settings, session=self._http_session)
        logger.info("Sending %s via %s to %s", req.message_type, gateway.provider, req.to_number)

        receipt = gateway.send(req)

        lead_id = self._log_history(organization_id, req, receipt.provider, receipt.provider_message_id)

        return DispatchResult(
            provider=receipt.provider,
            status=receipt.status.value,
            external_id=receipt.provider_message_id,
            lead_id=lead_id,
        )

    def _log_history(
        self,
        organization_id: uuid.UUID,
        req: OutboundSendRequest,
        provider: str,
        external_id: Optional[str],
    ) -> Optional[uuid.UUID]:
        lead_id = find_or_create_outbound_lead(
            self._db, organization_id=organization_id, phone=req.to_number
        )
        if lead_id is None:
            logger.warning("Sent to %s but no lead could be created; history not saved", req.to_number)
            return None

        content = req.body_text or ""
        if req.is_media:
            content = req.caption or f"[{req.media_type or 'mídia'}]"

        try:
            record_outbound(
                self._db,
                OutboundEntry(
                    lead_id=lead_id,
                    content=content,
                    provider=provider,
                    external_id=external_id,
                    media_type=req.media_type if req.is_media else None,
                    media_url=req.media if req.is_media else None,
                    mime_type=req.mime_type if req.is_media else None,
                    file_name=req.file_name if req.is_media else None,
                    caption=req.caption if req.is_media else None,
                ),
            )
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Error saving outbound history for lead %s", lead_id)

        touch_lead(self._db, lead_id=lead_id)
        return lead_id
