"""
SendSales WhatsApp CRM
Tenant provider configuration

Per-organization WhatsApp credentials live in shared storage:
- Evolution: organizations.evolution_url / evolution_api_key / evolution_instance
- Meta: whatsapp_config.phone_number_id / access_token

TenantConfigProvider keeps the resolver and the dispatcher independent of
where that storage is.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from wacrm.models import Organization, WhatsAppConfig


@dataclass(frozen=True)
class ProviderConfig:
    organization_id: uuid.UUID
    evolution_url: Optional[str] = None
    evolution_api_key: Optional[str] = None
    evolution_instance: Optional[str] = None
    meta_phone_number_id: Optional[str] = None
    meta_access_token: Optional[str] = None

    @property
    def has_evolution(self) -> bool:
        return bool(self.evolution_url and self.evolution_api_key and self.evolution_instance)

    @property
    def has_meta(self) -> bool:
        return bool(self.meta_phone_number_id and self.meta_access_token)


class TenantConfigProvider(Protocol):
    def get_config(self, organization_id: uuid.UUID) -> Optional[ProviderConfig]:
        ...

    def organizations_for_phone_number_id(self, phone_number_id: str) -> list[uuid.UUID]:
        ...

    def organizations_for_instance(self, instance_name: str) -> list[uuid.UUID]:
        ...


class SqlTenantConfigProvider:
    """Reads tenant configuration through the request's ORM session."""

    # Two rows are enough to tell "unique" from "ambiguous"
    _LOOKUP_LIMIT = 2

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_config(self, organization_id: uuid.UUID) -> Optional[ProviderConfig]:
        org = (
            self._db.query(Organization)
            .filter(Organization.id == organization_id)
            .one_or_none()
        )
        if not org:
            return None

        meta = (
            self._db.query(WhatsAppConfig)
            .filter(WhatsAppConfig.organization_id == organization_id)
            .one_or_none()
        )

        return ProviderConfig(
            organization_id=org.id,
            evolution_url=org.evolution_url,
            evolution_api_key=org.evolution_api_key,
            evolution_instance=org.evolution_instance,
            meta_phone_number_id=meta.phone_number_id if meta else None,
            meta_access_token=meta.access_token if meta else None,
        )

    def organizations_for_phone_number_id(self, phone_number_id: str) -> list[uuid.UUID]:
        rows = (
            self._db.query(WhatsAppConfig.organization_id)
            .filter(WhatsAppConfig.phone_number_id == phone_number_id)
            .limit(self._LOOKUP_LIMIT)
            .all()
        )
        return [r.organization_id for r in rows]

    def organizations_for_instance(self, instance_name: str) -> list[uuid.UUID]:
        rows = (
            self._db.query(Organization.id)
            .filter(Organization.evolution_instance == instance_name)
            .limit(self._LOOKUP_LIMIT)
            .all()
        )
        return [r.id for r in rows]
