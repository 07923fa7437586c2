"""
File: wacrm/admin/routes.py

Project: SendSales WhatsApp CRM

Purpose:
Operational visibility into the inbound pipeline.

Endpoints:
- GET /admin/debug-events                          dropped / unroutable deliveries
- GET /admin/organizations/{organization_id}/leads
- GET /admin/leads/{lead_id}/conversations

Design rules:
- Read-only (GET)
- No business logic here
- Safe when webhook_debug_events is not provisioned yet
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wacrm.db import get_db
from wacrm.models import ConversationEntry, Lead, Organization, WebhookDebugEvent

router = APIRouter(prefix="/admin", tags=["admin"])


# -------------------------------------------------------------------
# Debug events
# -------------------------------------------------------------------
@router.get("/debug-events")
def list_debug_events(
    drop_reason: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(WebhookDebugEvent)
    if drop_reason:
        query = query.filter(WebhookDebugEvent.drop_reason == drop_reason)

    try:
        rows = query.order_by(WebhookDebugEvent.created_at.desc()).limit(limit).all()
    except SQLAlchemyError:
        db.rollback()
        return []

    return [
        {
            "id": r.id,
            "provider": r.provider,
            "event_type": r.event_type,
            "instance_name": r.instance_name,
            "phone": r.phone,
            "external_id": r.external_id,
            "parsed_count": r.parsed_count,
            "drop_reason": r.drop_reason,
            "content_sample": r.content_sample,
            "created_at": r.created_at,
        }
        for r in rows
    ]


# -------------------------------------------------------------------
# Leads per organization
# -------------------------------------------------------------------
@router.get("/organizations/{organization_id}/leads")
def list_organization_leads(
    organization_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    organization = (
        db.query(Organization)
        .filter(Organization.id == organization_id)
        .one_or_none()
    )
    if not organization:
        raise HTTPException(status_code=404, detail="Organization not found")

    rows = (
        db.query(Lead)
        .filter(Lead.organization_id == organization_id)
        .order_by(Lead.last_active.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "id": r.id,
            "phone": r.phone,
            "name": r.name,
            "status": r.status,
            "tags": r.tags or [],
            "last_active": r.last_active,
            "created_at": r.created_at,
        }
        for r in rows
    ]


# -------------------------------------------------------------------
# Conversation log per lead
# -------------------------------------------------------------------
@router.get("/leads/{lead_id}/conversations")
def list_lead_conversations(
    lead_id: UUID,
    db: Session = Depends(get_db),
):
    lead = db.query(Lead).filter(Lead.id == lead_id).one_or_none()
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")

    rows = (
        db.query(
            ConversationEntry.id,
            ConversationEntry.content,
            ConversationEntry.sender_type,
            ConversationEntry.is_ai_generated,
            ConversationEntry.provider,
            ConversationEntry.external_id,
            ConversationEntry.media_type,
            ConversationEntry.media_url,
            ConversationEntry.created_at,
        )
        .filter(ConversationEntry.lead_id == lead_id)
        .order_by(ConversationEntry.created_at.asc())
        .all()
    )

    return [
        {
            "id": r.id,
            "content": r.content,
            "sender_type": r.sender_type,
            "is_ai_generated": r.is_ai_generated,
            "provider": r.provider,
            "external_id": r.external_id,
            "media_type": r.media_type,
            "media_url": r.media_url,
            "created_at": r.created_at,
        }
        for r in rows
    ]
