"""
File: wacrm/services/leads_service.py
Project: SendSales WhatsApp CRM

Purpose:
Shared lead (contact) service.

This is the ONLY place allowed to:
- find-or-create a lead from an inbound message
- find-or-create a lead for an outbound send
- look up which organizations know a phone number

Used by:
- webhook_processor.py
- tenant_resolver.py
- outbound_dispatcher.py

Design rules:
- Leads are scoped to one organization by (organization_id, phone)
- Lookup before insert; a lost insert race re-reads the winner's row
- Never overwrite a real name with the bare phone number
- DB is source of truth
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wacrm.inbound.types import normalize_phone
from wacrm.models import Lead

logger = logging.getLogger("leads_service")

INBOUND_TAG = "inbound"


# -------------------------------------------------
# Queries
# -------------------------------------------------

def find_lead(db: Session, *, organization_id: uuid.UUID, phone: str) -> Lead | None:
    return (
        db.query(Lead)
        .filter(
            Lead.organization_id == organization_id,
            Lead.phone == phone,
        )
        .one_or_none()
    )


def organizations_with_lead_phone(db: Session, *, phones: Iterable[str]) -> list[uuid.UUID]:
    """Distinct organizations owning a lead with any of these phone numbers."""
    phones = [p for p in phones if p]
    if not phones:
        return []

    rows = (
        db.query(Lead.organization_id)
        .filter(Lead.phone.in_(phones))
        .distinct()
        .all()
    )
    return [r.organization_id for r in rows]


def _is_real_name(name: str | None, phone: str) -> bool:
    if not name or not name.strip():
        return False
    return normalize_phone(name) != phone


# -------------------------------------------------
# Commands
# -------------------------------------------------

def _insert_lead(db: Session, lead: Lead) -> uuid.UUID | None:
    """
    Insert and commit. On a unique (organization_id, phone) violation the
    concurrent winner's id is returned instead.
    """
    try:
        db.add(lead)
        db.commit()
        return lead.id
    except IntegrityError:
        db.rollback()
        existing = find_lead(db, organization_id=lead.organization_id, phone=lead.phone)
        if existing:
            logger.info("Lead insert raced for %s, reusing %s", lead.phone, existing.id)
            return existing.id
        logger.exception("Lead insert failed for %s", lead.phone)
        return None
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Lead insert failed for %s", lead.phone)
        return None


def upsert_lead(
    db: Session,
    *,
    organization_id: uuid.UUID,
    phone: str,
    display_name: str | None,
    activity_at: datetime,
) -> uuid.UUID | None:
    """
    Find-or-create the lead for an inbound message.

    Returns:
        lead id -> lead found or created
        None    -> insert failed; the caller skips this message
    """
    lead = find_lead(db, organization_id=organization_id, phone=phone)

    if lead:
        lead.last_active = activity_at
        if _is_real_name(display_name, phone):
            lead.name = display_name.strip()
        db.commit()
        return lead.id

    name = display_name.strip() if display_name and display_name.strip() else phone
    return _insert_lead(
        db,
        Lead(
            organization_id=organization_id,
            phone=phone,
            name=name,
            status="new",
            tags=[INBOUND_TAG],
            last_active=activity_at,
        ),
    )


def find_or_create_outbound_lead(
    db: Session,
    *,
    organization_id: uuid.UUID,
    phone: str,
) -> uuid.UUID | None:
    """Lead for an agent-initiated send. Unknown numbers get name = phone."""
    lead = find_lead(db, organization_id=organization_id, phone=phone)
    if lead:
        return lead.id

    return _insert_lead(
        db,
        Lead(
            organization_id=organization_id,
            phone=phone,
            name=phone,
            status="new",
            tags=[],
        ),
    )


def touch_lead(db: Session, *, lead_id: uuid.UUID, at: datetime | None = None) -> None:
    db.query(Lead).filter(Lead.id == lead_id).update(
        {Lead.last_active: at or datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    db.commit()
