"""
File: wacrm/outbound/factory.py

Project: SendSales WhatsApp CRM

Purpose:
- Single place that picks a provider for an organization and builds its gateway

Provider priority:
1. Evolution (url + api key + instance all configured)
2. Meta (phone_number_id + access token configured)

Design rules:
- No business logic here
- Only construction / wiring
"""

from __future__ import annotations

from typing import Optional

import requests

from wacrm.config import Settings
from wacrm.outbound.dry_run import DryRunSendGateway
from wacrm.outbound.evolution import EvolutionClient, EvolutionSendGateway
from wacrm.outbound.evolution import PROVIDER as EVOLUTION
from wacrm.outbound.gateway import NoProviderConfigured, SendGateway
from wacrm.outbound.meta import MetaSendGateway, MetaWhatsAppClient
from wacrm.outbound.meta import PROVIDER as META
from wacrm.outbound.settings import EvolutionSettings, MetaWhatsAppSettings
from wacrm.services.tenant_config import ProviderConfig


def select_provider(config: ProviderConfig) -> str:
    if config.has_evolution:
        return EVOLUTION
    if config.has_meta:
        return META
    raise NoProviderConfigured("No WhatsApp provider configured for this organization")


def build_send_gateway(
    config: ProviderConfig,
    *,
    settings: Settings,
    session: Optional[requests.Session] = None,
) -> SendGateway:
    provider = select_provider(config)

    if settings.outbound_dry_run:
        return DryRunSendGateway(provider)

    if provider == EVOLUTION:
        client = EvolutionClient(
            EvolutionSettings(
                base_url=config.evolution_url,
                api_key=config.evolution_api_key,
                instance=config.evolution_instance,
            ),
            session=session,
            timeout=settings.http_timeout_seconds,
        )
        return EvolutionSendGateway(client)

    client = MetaWhatsAppClient(
        MetaWhatsAppSettings(
            api_version=settings.meta_api_version,
            access_token=config.meta_access_token,
            phone_number_id=config.meta_phone_number_id,
        ),
        session=session,
        timeout=settings.http_timeout_seconds,
    )
    return MetaSendGateway(client)
