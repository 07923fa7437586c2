"""
File: wacrm/outbound/routes.py

Project: SendSales WhatsApp CRM

Purpose:
HTTP entry points called by the dashboard.

Endpoints:
- POST /messages/send              send text/media for an organization
- POST /whatsapp/test-connection   validate Meta credentials before saving

Notes:
- Errors come back as {"success": false, "error": "..."}; the dashboard shows them verbatim
- When SEND_API_KEY is set, callers must present it in X-Api-Key
"""

from __future__ import annotations

import logging
import uuid
from typing import Literal, Optional

import requests
from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from wacrm.config import Settings, get_settings
from wacrm.db import get_db
from wacrm.outbound.gateway import OutboundDeliveryError, OutboundSendRequest
from wacrm.outbound.meta import MetaWhatsAppClient, MetaWhatsAppError
from wacrm.outbound.settings import MetaWhatsAppSettings
from wacrm.security import shared_secret_valid
from wacrm.services.outbound_dispatcher import OutboundDispatcher
from wacrm.services.tenant_config import SqlTenantConfigProvider

router = APIRouter(tags=["outbound"])
logger = logging.getLogger("outbound")


class SendMessageBody(BaseModel):
    type: Literal["text", "media"] = "text"
    organization_id: uuid.UUID
    phone: str
    message: Optional[str] = None

    media: Optional[str] = None
    mediatype: Optional[str] = None
    mimetype: Optional[str] = None
    caption: Optional[str] = None
    file_name: Optional[str] = Field(default=None, alias="fileName")
    delay: Optional[int] = None

    model_config = {"populate_by_name": True}


class ConnectionCheckBody(BaseModel):
    phone_number_id: Optional[str] = None
    access_token: Optional[str] = None


def get_http_session() -> Optional[requests.Session]:
    """Overridden in tests; None lets each client open its own session."""
    return None


def _failure(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


@router.post("/messages/send")
def send_message(
    body: SendMessageBody,
    x_api_key: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    http_session: Optional[requests.Session] = Depends(get_http_session),
):
    if not shared_secret_valid(x_api_key, settings.send_api_key):
        return _failure("Unauthorized", status.HTTP_401_UNAUTHORIZED)

    dispatcher = OutboundDispatcher(
        db,
        config_provider=SqlTenantConfigProvider(db),
        settings=settings,
        http_session=http_session,
    )

    try:
        result = dispatcher.send(
            body.organization_id,
            OutboundSendRequest(
                to_number=body.phone,
                body_text=body.message,
                message_type=body.type,
                media=body.media,
                media_type=body.mediatype,
                mime_type=body.mimetype,
                caption=body.caption,
                file_name=body.file_name,
                delay=body.delay,
            ),
        )
    except OutboundDeliveryError as e:
        logger.warning("Send failed for organization %s: %s", body.organization_id, e)
        return _failure(str(e))
    except requests.RequestException as e:
        logger.exception("Provider unreachable for organization %s", body.organization_id)
        return _failure(f"Provider request failed: {e}")

    return {
        "success": True,
        "provider": result.provider,
        "status": result.status,
        "external_id": result.external_id,
    }


@router.post("/whatsapp/test-connection")
def check_whatsapp_connection(
    body: ConnectionCheckBody,
    settings: Settings = Depends(get_settings),
    http_session: Optional[requests.Session] = Depends(get_http_session),
):
    if not body.phone_number_id or not body.access_token:
        return _failure("phone_number_id and access_token are required")

    client = MetaWhatsAppClient(
        MetaWhatsAppSettings(
            api_version=settings.meta_api_version,
            access_token=body.access_token,
            phone_number_id=body.phone_number_id,
        ),
        session=http_session,
        timeout=settings.http_timeout_seconds,
    )

    # Logical failures are 200 so the settings screen can show Meta's message
    try:
        data = client.check_phone_number()
    except MetaWhatsAppError as e:
        return {"success": False, "error": str(e)}
    except requests.RequestException as e:
        logger.exception("Meta connection test failed")
        return _failure(str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return {"success": True, "data": data}
