"""Tests for the live session registry and its durable sync."""

import asyncio

import pytest

from receptionist.backends.memory import DEMO_SERVICES, InMemorySessionArchive, InMemorySessionStore
from receptionist.schemas.conversation_schema import SessionStatus
from receptionist.sessions.registry import SessionRegistry
from receptionist.telemetry import RecordingTelemetry
from tests.conftest import make_deps, make_session


class FlakyStore(InMemorySessionStore):
    """Field writes fail ``failures`` times before succeeding."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.field_calls = 0

    async def save_fields(self, session_id, business_id, fields):
        self.field_calls += 1
        if self.field_calls <= self.failures:
            raise ConnectionError("redis unavailable")
        await super().save_fields(session_id, business_id, fields)


def _registry(store=None, archive=None, telemetry=None, **kwargs):
    kwargs.setdefault("cleanup_delay_sec", 0)
    kwargs.setdefault("sync_retry_delay_sec", 0)
    return SessionRegistry(store=store, archive=archive, telemetry=telemetry, **kwargs)


def _session(session_id="CA-reg-001"):
    return make_session(make_deps(), session_id=session_id)


class TestAddAndGet:
    @pytest.mark.asyncio
    async def test_add_registers_and_saves(self):
        store = InMemorySessionStore()
        registry = _registry(store)
        session = await registry.add(_session())
        await registry.drain()
        assert session.id in registry
        assert store.records[(session.id, session.business_id)]["status"] == "active"

    @pytest.mark.asyncio
    async def test_existing_session_wins(self):
        registry = _registry()
        first = await registry.add(_session())
        second = await registry.add(_session())
        assert second is first
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_get_live_session(self):
        registry = _registry()
        session = await registry.add(_session())
        assert await registry.get(session.id) is session

    @pytest.mark.asyncio
    async def test_get_missing_without_store(self):
        assert await _registry().get("CA-none", "biz-reliable") is None

    @pytest.mark.asyncio
    async def test_rehydrates_from_store(self):
        store = InMemorySessionStore()
        first = _registry(store)
        session = await first.add(_session())
        session.set_instructions("Be brief.")
        await first.drain()

        second = _registry(store)
        restored = await second.get(session.id, session.business_id)
        assert restored is not session
        assert restored.ai_instructions == "Be brief."
        assert restored.granted_tool_names() == session.granted_tool_names()
        assert session.id in second

    @pytest.mark.asyncio
    async def test_rehydrated_session_keeps_selected_service(self):
        store = InMemorySessionStore()
        first = _registry(store)
        session = await first.add(_session())
        await first.drain()
        session.select_service(DEMO_SERVICES[0])
        await first.drain()

        restored = await _registry(store).get(session.id, session.business_id)
        assert restored.selected_service == DEMO_SERVICES[0]

    @pytest.mark.asyncio
    async def test_ended_session_not_rehydrated(self):
        store = InMemorySessionStore()
        session = _session()
        session.end()
        await store.save(session.to_snapshot())
        assert await _registry(store).get(session.id, session.business_id) is None

    @pytest.mark.asyncio
    async def test_concurrent_adds_keep_one_session(self):
        registry = _registry()
        results = await asyncio.gather(*(registry.add(_session()) for _ in range(5)))
        assert len({id(s) for s in results}) == 1


class TestFieldSync:
    @pytest.mark.asyncio
    async def test_field_change_written_with_ttl(self):
        store = InMemorySessionStore()
        registry = _registry(store, ttl_seconds=900)
        session = await registry.add(_session())
        session.set_instructions("Updated")
        await registry.drain()
        key = (session.id, session.business_id)
        assert store.records[key]["ai_instructions"] == "Updated"
        assert store.ttls[key] == 900

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        store = FlakyStore(failures=2)
        telemetry = RecordingTelemetry()
        registry = _registry(store, telemetry=telemetry, sync_retries=3)
        session = await registry.add(_session())
        session.set_instructions("Eventually")
        await registry.drain()
        assert store.field_calls == 3
        assert store.records[(session.id, session.business_id)]["ai_instructions"] == "Eventually"
        assert telemetry.errors == []

    @pytest.mark.asyncio
    async def test_final_failure_reported_not_raised(self):
        store = FlakyStore(failures=10)
        telemetry = RecordingTelemetry()
        registry = _registry(store, telemetry=telemetry, sync_retries=3)
        session = await registry.add(_session())
        session.set_instructions("Lost")
        await registry.drain()
        assert store.field_calls == 3
        assert len(telemetry.errors) == 1
        assert telemetry.errors[0]["context"]["operation"] == "sync ai_instructions"
        assert telemetry.errors[0]["context"]["attempts"] == 3
        assert session.ai_instructions == "Lost"

    @pytest.mark.asyncio
    async def test_retried_write_never_overwrites_newer_value(self):
        store = FlakyStore(failures=1)
        registry = _registry(store, sync_retries=3)
        session = await registry.add(_session())
        session.add_token_usage({"total_tokens": 10})
        session.add_token_usage({"total_tokens": 5})
        await registry.drain()
        assert session.token_usage.total_tokens == 15
        assert store.records[(session.id, session.business_id)]["token_usage"]["total_tokens"] == 15

    @pytest.mark.asyncio
    async def test_changes_collapse_into_one_write(self):
        store = FlakyStore(failures=0)
        registry = _registry(store)
        session = await registry.add(_session())
        session.set_instructions("First")
        session.set_instructions("Second")
        session.add_token_usage({"total_tokens": 3})
        await registry.drain()
        assert store.field_calls == 1
        record = store.records[(session.id, session.business_id)]
        assert record["ai_instructions"] == "Second"
        assert record["token_usage"]["total_tokens"] == 3

    @pytest.mark.asyncio
    async def test_failed_fields_written_with_next_change(self):
        store = FlakyStore(failures=3)
        registry = _registry(store, sync_retries=3)
        session = await registry.add(_session())
        session.set_instructions("Catch up")
        await registry.drain()
        session.add_token_usage({"total_tokens": 7})
        await registry.drain()
        record = store.records[(session.id, session.business_id)]
        assert record["ai_instructions"] == "Catch up"
        assert record["token_usage"]["total_tokens"] == 7

    def test_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="sync_retries"):
            SessionRegistry(sync_retries=0)


class TestEndOfCall:
    @pytest.mark.asyncio
    async def test_end_flushes_archives_and_removes(self):
        store = InMemorySessionStore()
        archive = InMemorySessionArchive()
        registry = _registry(store, archive)
        session = await registry.add(_session())
        session.end()
        await registry.drain()
        assert session.id not in registry
        assert store.records[(session.id, session.business_id)]["status"] == SessionStatus.ENDED.value
        assert len(archive.archived) == 1
        assert archive.archived[0][0]["id"] == session.id

    @pytest.mark.asyncio
    async def test_end_twice_archives_once(self):
        archive = InMemorySessionArchive()
        registry = _registry(archive=archive)
        session = await registry.add(_session())
        session.end()
        session.end()
        await registry.drain()
        assert len(archive.archived) == 1

    @pytest.mark.asyncio
    async def test_removed_only_after_delay(self):
        registry = _registry(cleanup_delay_sec=0.05)
        session = await registry.add(_session())
        session.end()
        await asyncio.sleep(0)
        assert session.id in registry
        await registry.drain()
        assert session.id not in registry

    @pytest.mark.asyncio
    async def test_close_cancels_pending_cleanup(self):
        registry = _registry(cleanup_delay_sec=60)
        session = await registry.add(_session())
        session.end()
        await asyncio.sleep(0)
        await registry.close()
        assert session.id in registry
