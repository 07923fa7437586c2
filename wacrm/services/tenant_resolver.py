"""
File: wacrm/services/tenant_resolver.py

Project: SendSales WhatsApp CRM

Purpose:
Decide which organization owns an inbound webhook delivery.

Resolution order (first match wins):
1. Meta phone_number_id  -> whatsapp_config.phone_number_id
2. Evolution instance    -> organizations.evolution_instance
3. Sender phone          -> the single organization owning a lead with that
                            phone (only when the delivery carried no routing
                            hint at all)

Design rules:
- FAIL CLOSED: never guess. Zero or several candidates is "unresolved".
- Unresolved is a normal result, not an exception.
- Do not fall back to "the first organization".
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from wacrm.inbound.types import ParsedBatch
from wacrm.services.leads_service import organizations_with_lead_phone
from wacrm.services.tenant_config import TenantConfigProvider

logger = logging.getLogger("tenant_resolver")

METHOD_PHONE_NUMBER_ID = "phone_number_id"
METHOD_INSTANCE_NAME = "instance_name"
METHOD_LEAD_PHONE = "lead_phone"


@dataclass(frozen=True)
class TenantResolution:
    organization_id: Optional[uuid.UUID]
    method: Optional[str] = None
    reason: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.organization_id is not None

    @staticmethod
    def unresolved(reason: str) -> "TenantResolution":
        return TenantResolution(organization_id=None, reason=reason)


def _single(candidates: list[uuid.UUID], method: str) -> TenantResolution:
    if len(candidates) == 1:
        return TenantResolution(organization_id=candidates[0], method=method)
    if not candidates:
        return TenantResolution.unresolved(f"unknown_{method}")

    logger.warning("Routing by %s matched %d organizations, refusing to pick one", method, len(candidates))
    return TenantResolution.unresolved(f"ambiguous_{method}")


class TenantResolver:
    def __init__(self, db: Session, config_provider: TenantConfigProvider) -> None:
        self._db = db
        self._config = config_provider

    def resolve(self, batch: ParsedBatch) -> TenantResolution:
        attempts: list[TenantResolution] = []

        if batch.phone_number_id:
            result = _single(
                self._config.organizations_for_phone_number_id(batch.phone_number_id),
                METHOD_PHONE_NUMBER_ID,
            )
            if result.resolved:
                return result
            attempts.append(result)

        instance_name = batch.first_instance_name()
        if instance_name:
            result = _single(
                self._config.organizations_for_instance(instance_name),
                METHOD_INSTANCE_NAME,
            )
            if result.resolved:
                return result
            attempts.append(result)

        if attempts:
            # A routing hint was present but matched nothing usable
            return attempts[-1]

        # Degraded case: the provider omitted routing hints for this event
        return _single(
            organizations_with_lead_phone(self._db, phones=batch.phones()),
            METHOD_LEAD_PHONE,
        )
