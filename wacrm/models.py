"""
File: wacrm/models.py

Project: SendSales WhatsApp CRM

Purpose:
SQLAlchemy ORM models for the tenant, contact and conversation log tables
shared by the dashboard and the webhook/relay services.

Design principles:
- No business logic in models
- Relationships kept minimal and explicit
- All writes are controlled by application logic, not model side-effects
- Conversation entries are append-only

Change control:
- conversations.raw_payload and webhook_debug_events are optional in older
  deployments; code writing them must tolerate their absence
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

LEAD_STATUSES = ("new", "contacted", "qualified", "customer", "lost")
SENDER_TYPES = ("user", "contact")
PROVIDERS = ("meta", "evolution")


# ---------------------------------------------------------------------
# Organization (tenant)
# ---------------------------------------------------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)

    # Evolution gateway configuration (all three required to send)
    evolution_url = Column(Text, nullable=True)
    evolution_api_key = Column(Text, nullable=True)
    evolution_instance = Column(Text, nullable=True, index=True)

    lead_limit = Column(Integer, nullable=True)
    instance_limit = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    whatsapp_config = relationship(
        "WhatsAppConfig",
        back_populates="organization",
        uselist=False,
    )


# ---------------------------------------------------------------------
# Meta Cloud API configuration (one per organization)
# ---------------------------------------------------------------------
class WhatsAppConfig(Base):
    __tablename__ = "whatsapp_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid,
        ForeignKey("organizations.id"),
        nullable=False,
        unique=True,
    )
    waba_id = Column(Text, nullable=True)
    phone_number_id = Column(Text, nullable=True, index=True)
    verify_token = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="whatsapp_config")


# ---------------------------------------------------------------------
# Lead (contact, scoped to one organization)
# ---------------------------------------------------------------------
class Lead(Base):
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        Uuid,
        ForeignKey("organizations.id"),
        nullable=False,
        index=True,
    )
    phone = Column(Text, nullable=False)
    name = Column(Text, nullable=True)
    status = Column(Text, nullable=False, server_default="new")
    tags = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    last_active = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'customer', 'lost')",
            name="ck_leads_status",
        ),
        UniqueConstraint(
            "organization_id",
            "phone",
            name="uq_leads_organization_phone",
        ),
    )

    organization = relationship("Organization")


# ---------------------------------------------------------------------
# Conversation entry (one message, immutable)
# ---------------------------------------------------------------------
class ConversationEntry(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id = Column(
        Uuid,
        ForeignKey("leads.id"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    sender_type = Column(Text, nullable=False)
    is_ai_generated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    provider = Column(Text, nullable=True)
    external_id = Column(Text, nullable=True)

    media_type = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    mime_type = Column(Text, nullable=True)
    file_name = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)

    # Optional: not every deployed schema has this column yet
    raw_payload = Column(JSON, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "sender_type IN ('user', 'contact')",
            name="ck_conversations_sender_type",
        ),
        # NULL external ids never collide, so messages without one are not deduplicated
        UniqueConstraint(
            "provider",
            "external_id",
            name="uq_conversations_provider_external_id",
        ),
    )

    lead = relationship("Lead")


# ---------------------------------------------------------------------
# Webhook debug events (optional table, best-effort writes only)
# ---------------------------------------------------------------------
class WebhookDebugEvent(Base):
    __tablename__ = "webhook_debug_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider = Column(Text, nullable=True)
    event_type = Column(Text, nullable=True)
    instance_name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    external_id = Column(Text, nullable=True)
    parsed_count = Column(Integer, nullable=False, default=0)
    drop_reason = Column(Text, nullable=True, index=True)
    content_sample = Column(Text, nullable=True)
    raw_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
