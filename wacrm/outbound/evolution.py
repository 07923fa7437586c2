"""
File: wacrm/outbound/evolution.py

Project: SendSales WhatsApp CRM

Purpose:
Evolution API (self-hosted Baileys gateway) client.
Supports:
- sendText
- sendMedia (URL or base64)

Notes:
- Evolution expects the numeric phone in `number`, not a JID
- Authentication is the per-instance `apikey` header
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from wacrm.outbound.gateway import (
    OutboundDeliveryError,
    OutboundSendReceipt,
    OutboundSendRequest,
    SendStatus,
    extract_provider_message_id,
)
from wacrm.outbound.settings import EvolutionSettings

PROVIDER = "evolution"


class EvolutionApiError(OutboundDeliveryError):
    pass


class EvolutionClient:
    def __init__(
        self,
        settings: EvolutionSettings,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._timeout = timeout

    def _post(self, url: str, payload: Dict[str, Any], *, action: str) -> Dict[str, Any]:
        resp = self._session.post(
            url,
            json=payload,
            headers={
                "apikey": self._settings.api_key,
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
        )

        if not 200 <= resp.status_code < 300:
            detail = (resp.text or "").strip() or "no details"
            raise EvolutionApiError(f"Evolution API error ({action}) [{resp.status_code}]: {detail}")

        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def send_text(self, *, number: str, text: str) -> Dict[str, Any]:
        return self._post(
            self._settings.send_text_url,
            {"number": number, "text": text, "linkPreview": False},
            action="sendText",
        )

    def send_media(
        self,
        *,
        number: str,
        media: str,
        media_type: str,
        mime_type: str,
        caption: Optional[str] = None,
        file_name: Optional[str] = None,
        delay: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "number": number,
            "mediatype": media_type,
            "mimetype": mime_type,
            "media": media,
        }
        if caption:
            payload["caption"] = caption
        if file_name:
            payload["fileName"] = file_name
        if delay is not None:
            payload["delay"] = delay

        return self._post(self._settings.send_media_url, payload, action="sendMedia")


class EvolutionSendGateway:
    provider = PROVIDER

    def __init__(self, client: EvolutionClient) -> None:
        self._client = client

    def send(self, req: OutboundSendRequest) -> OutboundSendReceipt:
        if req.is_media:
            data = self._client.send_media(
                number=req.to_number,
                media=req.media or "",
                media_type=req.media_type or "",
                mime_type=req.mime_type or "",
                caption=req.caption,
                file_name=req.file_name,
                delay=req.delay,
            )
        else:
            data = self._client.send_text(number=req.to_number, text=req.body_text or "")

        return OutboundSendReceipt.now(
            status=SendStatus.SENT,
            provider=PROVIDER,
            detail="evolution accepted",
            provider_message_id=extract_provider_message_id(data),
        )
