"""Outbound sends: provider selection, history logging and the /messages/send route."""

import uuid

import pytest
import requests

from conftest import BARE_ORG_ID, META_ORG_ID, META_PHONE_NUMBER_ID, VENDAS_ORG_ID
from wacrm.config import Settings
from wacrm.models import ConversationEntry, Lead
from wacrm.outbound import NoProviderConfigured, OutboundSendRequest, select_provider
from wacrm.outbound.evolution import EvolutionApiError
from wacrm.outbound.meta import MetaWhatsAppError
from wacrm.services.outbound_dispatcher import (
    InvalidSendRequest,
    OrganizationNotFound,
    OutboundDispatcher,
)
from wacrm.services.tenant_config import ProviderConfig, SqlTenantConfigProvider


@pytest.fixture()
def dispatcher(db, organizations, settings, http_session):
    return OutboundDispatcher(
        db,
        config_provider=SqlTenantConfigProvider(db),
        settings=settings,
        http_session=http_session,
    )


# -------------------------------------------------------------------
# Provider selection
# -------------------------------------------------------------------
def test_evolution_wins_over_meta():
    config = ProviderConfig(
        organization_id=uuid.uuid4(),
        evolution_url="https://evo.example.com",
        evolution_api_key="k",
        evolution_instance="i",
        meta_phone_number_id="1",
        meta_access_token="t",
    )
    assert select_provider(config) == "evolution"


def test_meta_when_evolution_is_incomplete():
    config = ProviderConfig(
        organization_id=uuid.uuid4(),
        evolution_url="https://evo.example.com",
        meta_phone_number_id="1",
        meta_access_token="t",
    )
    assert select_provider(config) == "meta"


def test_no_provider_configured():
    with pytest.raises(NoProviderConfigured):
        select_provider(ProviderConfig(organization_id=uuid.uuid4()))


# -------------------------------------------------------------------
# Dispatcher
# -------------------------------------------------------------------
def test_evolution_text_send_is_logged(dispatcher, db, http_session, json_response):
    http_session.post.return_value = json_response(201, {"key": {"id": "3EB0OUT"}})

    result = dispatcher.send(
        VENDAS_ORG_ID,
        OutboundSendRequest(to_number="+55 (11) 99999-0000", body_text="Olá!"),
    )

    assert result.provider == "evolution"
    assert result.status == "sent"
    assert result.external_id == "3EB0OUT"

    url = http_session.post.call_args.args[0]
    kwargs = http_session.post.call_args.kwargs
    assert url == "https://evo.example.com/message/sendText/Vendas1"
    assert kwargs["json"] == {"number": "5511999990000", "text": "Olá!", "linkPreview": False}
    assert kwargs["headers"]["apikey"] == "evo-key"

    lead = db.query(Lead).one()
    assert lead.phone == "5511999990000"
    assert lead.name == "5511999990000"
    assert lead.last_active is not None

    entry = db.query(ConversationEntry).one()
    assert entry.sender_type == "user"
    assert entry.content == "Olá!"
    assert entry.provider == "evolution"
    assert entry.external_id == "3EB0OUT"


def test_evolution_media_send(dispatcher, db, http_session, json_response):
    http_session.post.return_value = json_response(201, {"key": {"id": "3EB0IMG"}})

    dispatcher.send(
        VENDAS_ORG_ID,
        OutboundSendRequest(
            to_number="5511999990000",
            message_type="media",
            media="https://cdn.example.com/catalogo.pdf",
            media_type="document",
            mime_type="application/pdf",
            file_name="catalogo.pdf",
        ),
    )

    url = http_session.post.call_args.args[0]
    payload = http_session.post.call_args.kwargs["json"]
    assert url.endswith("/message/sendMedia/Vendas1")
    assert payload["mediatype"] == "document"
    assert payload["fileName"] == "catalogo.pdf"

    entry = db.query(ConversationEntry).one()
    assert entry.content == "[document]"
    assert entry.media_url == "https://cdn.example.com/catalogo.pdf"


def test_meta_text_send(dispatcher, db, http_session, json_response):
    http_session.post.return_value = json_response(
        200, {"messaging_product": "whatsapp", "messages": [{"id": "wamid.OUT"}]}
    )

    result = dispatcher.send(META_ORG_ID, OutboundSendRequest(to_number="5511999990000", body_text="Oi"))

    assert result.provider == "meta"
    assert result.external_id == "wamid.OUT"
    url = http_session.post.call_args.args[0]
    assert url == f"https://graph.facebook.com/v17.0/{META_PHONE_NUMBER_ID}/messages"
    assert http_session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer meta-token"


def test_provider_rejection_raises_and_logs_nothing(dispatcher, db, http_session, json_response):
    http_session.post.return_value = json_response(400, {"error": "instance not connected"})

    with pytest.raises(EvolutionApiError):
        dispatcher.send(VENDAS_ORG_ID, OutboundSendRequest(to_number="5511999990000", body_text="Oi"))

    assert db.query(ConversationEntry).count() == 0


def test_meta_rejection_raises(dispatcher, http_session, json_response):
    http_session.post.return_value = json_response(401, {"error": {"message": "Invalid OAuth access token"}})

    with pytest.raises(MetaWhatsAppError):
        dispatcher.send(META_ORG_ID, OutboundSendRequest(to_number="5511999990000", body_text="Oi"))


def test_organization_without_provider(dispatcher):
    with pytest.raises(NoProviderConfigured):
        dispatcher.send(BARE_ORG_ID, OutboundSendRequest(to_number="5511999990000", body_text="Oi"))


def test_unknown_organization(dispatcher):
    with pytest.raises(OrganizationNotFound):
        dispatcher.send(uuid.uuid4(), OutboundSendRequest(to_number="5511999990000", body_text="Oi"))


@pytest.mark.parametrize(
    "req",
    [
        OutboundSendRequest(to_number="", body_text="Oi"),
        OutboundSendRequest(to_number="5511999990000", body_text=""),
        OutboundSendRequest(to_number="5511999990000", message_type="media", media="https://x/y.mp3",
                            media_type="audio", mime_type="audio/mpeg"),
        OutboundSendRequest(to_number="5511999990000", message_type="media", media_type="image"),
        OutboundSendRequest(to_number="5511999990000", message_type="sticker", body_text="x"),
    ],
)
def test_invalid_requests_are_rejected_before_sending(dispatcher, http_session, req):
    with pytest.raises(InvalidSendRequest):
        dispatcher.send(VENDAS_ORG_ID, req)
    http_session.post.assert_not_called()


def test_dry_run_never_calls_the_provider(db, organizations, http_session):
    dispatcher = OutboundDispatcher(
        db,
        config_provider=SqlTenantConfigProvider(db),
        settings=Settings(database_url="sqlite://", outbound_mode="dry_run"),
        http_session=http_session,
    )

    result = dispatcher.send(VENDAS_ORG_ID, OutboundSendRequest(to_number="5511999990000", body_text="Oi"))

    assert result.status == "dry_run"
    assert result.provider == "evolution"
    http_session.post.assert_not_called()
    assert db.query(ConversationEntry).one().sender_type == "user"


# -------------------------------------------------------------------
# HTTP
# -------------------------------------------------------------------
class TestSendRoute:
    def test_send_text(self, client, organizations, http_session, json_response):
        http_session.post.return_value = json_response(201, {"key": {"id": "3EB0OUT"}})

        resp = client.post(
            "/messages/send",
            json={"organization_id": str(VENDAS_ORG_ID), "phone": "5511999990000", "message": "Olá!"},
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "provider": "evolution",
            "status": "sent",
            "external_id": "3EB0OUT",
        }

    def test_provider_error_is_reported(self, client, organizations, http_session, json_response):
        http_session.post.return_value = json_response(500, {"message": "boom"})

        resp = client.post(
            "/messages/send",
            json={"organization_id": str(VENDAS_ORG_ID), "phone": "5511999990000", "message": "Olá!"},
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert "Evolution API error" in body["error"]


class TestSendApiKey:
    @pytest.fixture()
    def settings(self):
        return Settings(database_url="sqlite://", send_api_key="key-1")

    def test_missing_api_key(self, client, organizations):
        resp = client.post(
            "/messages/send",
            json={"organization_id": str(VENDAS_ORG_ID), "phone": "5511999990000", "message": "Olá!"},
        )

        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_valid_api_key(self, client, organizations, http_session, json_response):
        http_session.post.return_value = json_response(201, {"key": {"id": "3EB0OUT"}})

        resp = client.post(
            "/messages/send",
            json={"organization_id": str(VENDAS_ORG_ID), "phone": "5511999990000", "message": "Olá!"},
            headers={"X-Api-Key": "key-1"},
        )

        assert resp.status_code == 200
        assert resp.json()["success"] is True


class TestConnectionCheck:
    def test_valid_credentials(self, client, http_session, json_response):
        http_session.get.return_value = json_response(
            200, {"id": "123", "display_phone_number": "+55 11 4000-0000"}
        )

        resp = client.post(
            "/whatsapp/test-connection",
            json={"phone_number_id": "123", "access_token": "tok"},
        )

        assert resp.json() == {"success": True, "data": {"id": "123", "name": "+55 11 4000-0000"}}
        assert http_session.get.call_args.args[0] == "https://graph.facebook.com/v17.0/123"

    def test_meta_error_message_is_passed_through(self, client, http_session, json_response):
        http_session.get.return_value = json_response(
            400, {"error": {"message": "Unsupported get request."}}
        )

        resp = client.post(
            "/whatsapp/test-connection",
            json={"phone_number_id": "123", "access_token": "tok"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": False, "error": "Unsupported get request."}

    def test_missing_fields(self, client):
        resp = client.post("/whatsapp/test-connection", json={"phone_number_id": "123"})

        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_network_failure(self, client, http_session):
        http_session.get.side_effect = requests.ConnectionError("unreachable")

        resp = client.post(
            "/whatsapp/test-connection",
            json={"phone_number_id": "123", "access_token": "tok"},
        )

        assert resp.status_code == 500
        assert resp.json()["success"] is False
