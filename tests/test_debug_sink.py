from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wacrm.models import WebhookDebugEvent
from wacrm.services.debug_sink import (
    DROP_PARSED_ZERO,
    BackgroundDebugSink,
    DebugEvent,
    SqlDebugSink,
    truncate_sample,
)


def test_event_is_persisted(session_factory, db):
    sink = SqlDebugSink(session_factory)

    sink.record(
        DebugEvent(
            drop_reason=DROP_PARSED_ZERO,
            provider="meta",
            event_type="statuses",
            parsed_count=0,
            raw_payload={"object": "whatsapp_business_account"},
        )
    )

    row = db.query(WebhookDebugEvent).one()
    assert row.drop_reason == DROP_PARSED_ZERO
    assert row.event_type == "statuses"
    assert row.raw_payload == {"object": "whatsapp_business_account"}


def test_missing_table_is_silently_ignored():
    # No create_all: webhook_debug_events does not exist
    engine = create_engine("sqlite://", poolclass=StaticPool)
    sink = SqlDebugSink(sessionmaker(bind=engine))

    sink.record(DebugEvent(drop_reason=DROP_PARSED_ZERO))

    engine.dispose()


def test_session_factory_failure_is_swallowed():
    def broken_factory():
        raise RuntimeError("pool exhausted")

    SqlDebugSink(broken_factory).record(DebugEvent(drop_reason=DROP_PARSED_ZERO))


def test_background_sink_defers_the_write():
    tasks = MagicMock()
    inner = MagicMock()
    event = DebugEvent(drop_reason=DROP_PARSED_ZERO)

    BackgroundDebugSink(tasks, inner).record(event)

    tasks.add_task.assert_called_once_with(inner.record, event)
    inner.record.assert_not_called()


def test_truncate_sample():
    assert truncate_sample("a" * 300, 200) == "a" * 200
    assert truncate_sample("short", 200) == "short"
    assert truncate_sample(None) is None
