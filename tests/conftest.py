"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from unittest.mock import MagicMock

# wacrm.db builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from wacrm.config import Settings, get_settings
from wacrm.db import get_db
from wacrm.main import app
from wacrm.models import Base, Organization, WhatsAppConfig
from wacrm.outbound.routes import get_http_session
from wacrm.services.debug_sink import BackgroundDebugSink, SqlDebugSink
from wacrm.webhooks import get_debug_sink

VENDAS_ORG_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
META_ORG_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
BARE_ORG_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")

VENDAS_INSTANCE = "Vendas1"
META_PHONE_NUMBER_ID = "109876543210"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def organizations(db: Session) -> dict[str, uuid.UUID]:
    """One Evolution tenant, one Meta tenant and one with nothing configured."""
    db.add_all(
        [
            Organization(
                id=VENDAS_ORG_ID,
                name="Vendas",
                slug="vendas",
                evolution_url="https://evo.example.com/",
                evolution_api_key="evo-key",
                evolution_instance=VENDAS_INSTANCE,
            ),
            Organization(id=META_ORG_ID, name="Cloud", slug="cloud"),
            Organization(id=BARE_ORG_ID, name="Bare", slug="bare"),
        ]
    )
    db.flush()
    db.add(
        WhatsAppConfig(
            organization_id=META_ORG_ID,
            phone_number_id=META_PHONE_NUMBER_ID,
            access_token="meta-token",
        )
    )
    db.commit()
    return {"vendas": VENDAS_ORG_ID, "meta": META_ORG_ID, "bare": BARE_ORG_ID}


@pytest.fixture()
def settings() -> Settings:
    return Settings(database_url="sqlite://")


@pytest.fixture()
def http_session() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def client(session_factory, settings, http_session) -> Generator[TestClient, None, None]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _get_debug_sink(background_tasks: BackgroundTasks):
        return BackgroundDebugSink(background_tasks, SqlDebugSink(session_factory))

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_debug_sink] = _get_debug_sink
    app.dependency_overrides[get_http_session] = lambda: http_session

    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def json_response():
    """Factory for requests.Response stand-ins as used by the provider clients."""

    def _build(status_code: int, payload) -> MagicMock:
        resp = MagicMock()
        resp.status_code = status_code
        resp.json.return_value = payload
        resp.text = str(payload)
        return resp

    return _build
