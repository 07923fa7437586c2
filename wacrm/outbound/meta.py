"""
File: wacrm/outbound/meta.py

Project: SendSales WhatsApp CRM

Purpose:
Meta WhatsApp Cloud API client.
Supports:
- Session messages (free text)
- Link-based media messages
- Credential check (phone number lookup) for the settings screen
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from wacrm.outbound.gateway import (
    OutboundDeliveryError,
    OutboundSendReceipt,
    OutboundSendRequest,
    SendStatus,
    extract_provider_message_id,
)
from wacrm.outbound.settings import MetaWhatsAppSettings

PROVIDER = "meta"


class MetaWhatsAppError(OutboundDeliveryError):
    pass


@dataclass(frozen=True)
class MetaSendResult:
    ok: bool
    status_code: int
    response_json: Dict[str, Any]


class MetaWhatsAppClient:
    def __init__(
        self,
        settings: MetaWhatsAppSettings,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.access_token}",
            "Content-Type": "application/json",
        }

    def _post(self, payload: Dict[str, Any]) -> MetaSendResult:
        resp = self._session.post(
            self._settings.messages_url,
            json=payload,
            headers=self._headers(),
            timeout=self._timeout,
        )

        try:
            data = resp.json()
        except ValueError:
            data = {"raw_text": resp.text}

        return MetaSendResult(
            ok=200 <= resp.status_code < 300,
            status_code=resp.status_code,
            response_json=data,
        )

    # ---------------------------------------------------------
    # SESSION MESSAGE
    # ---------------------------------------------------------
    def send_session_message(self, *, to_msisdn: str, text: str) -> MetaSendResult:
        if not text:
            raise MetaWhatsAppError("Session message text cannot be empty")

        return self._post(
            {
                "messaging_product": "whatsapp",
                "to": to_msisdn,
                "type": "text",
                "text": {"body": text},
            }
        )

    # ---------------------------------------------------------
    # MEDIA MESSAGE (public link)
    # ---------------------------------------------------------
    def send_media_link(
        self,
        *,
        to_msisdn: str,
        media_type: str,
        link: str,
        caption: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> MetaSendResult:
        if media_type not in ("image", "video", "document"):
            raise MetaWhatsAppError(f"Unsupported media type: {media_type}")
        if not link.lower().startswith(("http://", "https://")):
            raise MetaWhatsAppError("Meta media messages require a public URL")

        media: Dict[str, Any] = {"link": link}
        if caption:
            media["caption"] = caption
        if file_name and media_type == "document":
            media["filename"] = file_name

        return self._post(
            {
                "messaging_product": "whatsapp",
                "to": to_msisdn,
                "type": media_type,
                media_type: media,
            }
        )

    # ---------------------------------------------------------
    # CREDENTIAL CHECK
    # ---------------------------------------------------------
    def check_phone_number(self) -> Dict[str, Any]:
        """
        Fetch the phone number object to confirm the id exists and the token
        can read it. Raises MetaWhatsAppError with Meta's message otherwise.
        """
        resp = self._session.get(
            self._settings.phone_number_url,
            headers=self._headers(),
            timeout=self._timeout,
        )

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not 200 <= resp.status_code < 300:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise MetaWhatsAppError(message or f"Meta API returned {resp.status_code}")

        if str(data.get("id")) != str(self._settings.phone_number_id):
            raise MetaWhatsAppError("Meta returned a different phone number id than requested")

        return {
            "id": data.get("id"),
            "name": data.get("display_phone_number") or data.get("verified_name") or "Verified",
        }


class MetaSendGateway:
    provider = PROVIDER

    def __init__(self, client: MetaWhatsAppClient) -> None:
        self._client = client

    def send(self, req: OutboundSendRequest) -> OutboundSendReceipt:
        if req.is_media:
            result = self._client.send_media_link(
                to_msisdn=req.to_number,
                media_type=req.media_type or "",
                link=req.media or "",
                caption=req.caption,
                file_name=req.file_name,
            )
        else:
            result = self._client.send_session_message(
                to_msisdn=req.to_number,
                text=req.body_text or "",
            )

        if not result.ok:
            raise MetaWhatsAppError(
                f"Meta API error [{result.status_code}]: {result.response_json}"
            )

        return OutboundSendReceipt.now(
            status=SendStatus.SENT,
            provider=PROVIDER,
            detail=f"meta status={result.status_code}",
            provider_message_id=extract_provider_message_id(result.response_json),
        )
