"""
wacrm/outbound/settings.py
SendSales WhatsApp CRM
Outbound provider settings

Purpose:
- Per-organization provider credentials, resolved from tenant configuration
  (never from process-wide environment variables).
- Process-wide knobs (Graph API version, HTTP timeout) come from wacrm.config.
"""

from __future__ import annotations

from dataclasses import dataclass

GRAPH_API_BASE = "https://graph.facebook.com"


@dataclass(frozen=True)
class MetaWhatsAppSettings:
    api_version: str
    access_token: str
    phone_number_id: str

    @property
    def base_url(self) -> str:
        version = self.api_version if self.api_version.startswith("v") else f"v{self.api_version}"
        return f"{GRAPH_API_BASE}/{version}"

    @property
    def phone_number_url(self) -> str:
        return f"{self.base_url}/{self.phone_number_id}"

    @property
    def messages_url(self) -> str:
        return f"{self.phone_number_url}/messages"


@dataclass(frozen=True)
class EvolutionSettings:
    base_url: str
    api_key: str
    instance: str

    @property
    def root_url(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def send_text_url(self) -> str:
        return f"{self.root_url}/message/sendText/{self.instance}"

    @property
    def send_media_url(self) -> str:
        return f"{self.root_url}/message/sendMedia/{self.instance}"
