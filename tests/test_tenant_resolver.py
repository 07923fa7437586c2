"""Organization routing for inbound deliveries (fail closed)."""

import uuid
from datetime import datetime, timezone

from conftest import META_ORG_ID, META_PHONE_NUMBER_ID, VENDAS_INSTANCE, VENDAS_ORG_ID
from wacrm.inbound import PROVIDER_EVOLUTION, PROVIDER_META, ParsedBatch, ParsedIncoming
from wacrm.models import Lead, Organization
from wacrm.services.tenant_config import ProviderConfig, SqlTenantConfigProvider
from wacrm.services.tenant_resolver import (
    METHOD_INSTANCE_NAME,
    METHOD_LEAD_PHONE,
    METHOD_PHONE_NUMBER_ID,
    TenantResolver,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def incoming(phone="5511999990000", provider=PROVIDER_EVOLUTION, instance_name=None):
    return ParsedIncoming(
        provider=provider,
        phone=phone,
        name=phone,
        content="oi",
        timestamp=NOW,
        external_id="ext-1",
        instance_name=instance_name,
    )


def resolver_for(db):
    return TenantResolver(db, SqlTenantConfigProvider(db))


def test_resolves_by_meta_phone_number_id(db, organizations):
    batch = ParsedBatch(
        provider=PROVIDER_META,
        messages=(incoming(provider=PROVIDER_META),),
        phone_number_id=META_PHONE_NUMBER_ID,
    )

    result = resolver_for(db).resolve(batch)

    assert result.resolved
    assert result.organization_id == META_ORG_ID
    assert result.method == METHOD_PHONE_NUMBER_ID


def test_resolves_by_evolution_instance(db, organizations):
    batch = ParsedBatch(
        provider=PROVIDER_EVOLUTION,
        messages=(incoming(instance_name=VENDAS_INSTANCE),),
    )

    result = resolver_for(db).resolve(batch)

    assert result.organization_id == VENDAS_ORG_ID
    assert result.method == METHOD_INSTANCE_NAME


def test_unknown_instance_is_unresolved_even_if_phone_is_known(db, organizations):
    db.add(Lead(organization_id=VENDAS_ORG_ID, phone="5511999990000", name="Maria", tags=[]))
    db.commit()

    batch = ParsedBatch(
        provider=PROVIDER_EVOLUTION,
        messages=(incoming(),),
        instance_name="Desconhecida",
    )

    result = resolver_for(db).resolve(batch)

    assert not result.resolved
    assert result.reason == "unknown_instance_name"


def test_instance_shared_by_two_organizations_is_ambiguous(db, organizations):
    db.add(
        Organization(
            name="Clone",
            slug="clone",
            evolution_instance=VENDAS_INSTANCE,
        )
    )
    db.commit()

    batch = ParsedBatch(provider=PROVIDER_EVOLUTION, messages=(incoming(),), instance_name=VENDAS_INSTANCE)

    result = resolver_for(db).resolve(batch)

    assert not result.resolved
    assert result.reason == "ambiguous_instance_name"


def test_falls_back_to_lead_phone_without_routing_hint(db, organizations):
    db.add(Lead(organization_id=META_ORG_ID, phone="5511999990000", name="Maria", tags=[]))
    db.commit()

    batch = ParsedBatch(provider=PROVIDER_EVOLUTION, messages=(incoming(),))

    result = resolver_for(db).resolve(batch)

    assert result.organization_id == META_ORG_ID
    assert result.method == METHOD_LEAD_PHONE


def test_phone_known_to_two_organizations_is_unresolved(db, organizations):
    db.add_all(
        [
            Lead(organization_id=META_ORG_ID, phone="5511999990000", name="Maria", tags=[]),
            Lead(organization_id=VENDAS_ORG_ID, phone="5511999990000", name="Maria", tags=[]),
        ]
    )
    db.commit()

    batch = ParsedBatch(provider=PROVIDER_EVOLUTION, messages=(incoming(),))

    result = resolver_for(db).resolve(batch)

    assert not result.resolved
    assert result.reason == "ambiguous_lead_phone"


def test_nothing_matches(db, organizations):
    batch = ParsedBatch(provider=PROVIDER_EVOLUTION, messages=(incoming(phone="5599000000000"),))

    result = resolver_for(db).resolve(batch)

    assert not result.resolved
    assert result.reason == "unknown_lead_phone"


def test_instance_is_tried_after_unknown_phone_number_id(db, organizations):
    batch = ParsedBatch(
        provider=PROVIDER_EVOLUTION,
        messages=(incoming(),),
        phone_number_id="does-not-exist",
        instance_name=VENDAS_INSTANCE,
    )

    result = resolver_for(db).resolve(batch)

    assert result.organization_id == VENDAS_ORG_ID


class TestSqlTenantConfigProvider:
    def test_get_config_reads_both_providers(self, db, organizations):
        provider = SqlTenantConfigProvider(db)

        vendas = provider.get_config(VENDAS_ORG_ID)
        meta = provider.get_config(META_ORG_ID)

        assert vendas.has_evolution and not vendas.has_meta
        assert meta.has_meta and not meta.has_evolution
        assert meta.meta_phone_number_id == META_PHONE_NUMBER_ID

    def test_get_config_unknown_organization(self, db, organizations):
        assert SqlTenantConfigProvider(db).get_config(uuid.uuid4()) is None

    def test_partial_evolution_config_does_not_count(self):
        config = ProviderConfig(
            organization_id=uuid.uuid4(),
            evolution_url="https://evo.example.com",
            evolution_api_key=None,
            evolution_instance="x",
        )
        assert not config.has_evolution
