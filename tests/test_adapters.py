"""Tests for event store adapters."""
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from redis.exceptions import RedisError
from contentpipe.adapters.memory import InMemoryEventStore
from contentpipe.adapters.redis_store import RedisEventStore
from contentpipe.event_models import EventCreate, EventFilters, EventUpdate, StoredEvent
import orjson


def make_event(event_type="test.event", **kwargs):
    return StoredEvent.from_create(EventCreate(event_type=event_type, **kwargs))


@pytest.mark.asyncio
async def test_memory_adapter_append():
    """Test in-memory adapter stores events as given."""
    adapter = InMemoryEventStore()
    event = make_event(payload={"key": "value"})

    stored = await adapter.append(event)

    assert stored is event
    assert len(adapter) == 1
    assert await adapter.get(event.id) == event


@pytest.mark.asyncio
async def test_memory_adapter_query_newest_first():
    """Test in-memory adapter lists newest events first."""
    adapter = InMemoryEventStore()
    for i in range(5):
        await adapter.append(make_event(f"test.event.{i}"))

    page = await adapter.query(EventFilters(limit=3))

    assert page.total == 5
    assert [e.event_type for e in page.events] == ["test.event.4", "test.event.3", "test.event.2"]


@pytest.mark.asyncio
async def test_memory_adapter_update_and_delete():
    adapter = InMemoryEventStore()
    event = await adapter.append(make_event())

    updated = await adapter.update(event.id, EventUpdate(severity="warning"))
    assert updated.severity == "warning"
    assert updated.id == event.id

    assert (await adapter.delete(event.id)).id == event.id
    assert await adapter.delete(event.id) is None
    assert len(adapter) == 0


@pytest.mark.asyncio
async def test_memory_adapter_health_check():
    """Test in-memory adapter health check."""
    adapter = InMemoryEventStore()
    assert await adapter.health_check() is True


@pytest.mark.asyncio
async def test_redis_adapter_append_with_mock():
    """Test Redis adapter writes the hash entry and the timeline."""
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.xadd.return_value = b"1234567890-0"

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        event = make_event(payload={"key": "value"})

        await adapter.append(event)

        key, field, raw = mock_redis.hset.call_args[0]
        assert key == "contentpipe:events"
        assert field == event.id
        parsed = orjson.loads(raw)
        assert parsed["event_type"] == "test.event"
        assert parsed["payload"] == {"key": "value"}

        stream_args = mock_redis.xadd.call_args
        assert stream_args[0][0] == "contentpipe:events:timeline"
        assert stream_args[0][1] == {"id": event.id}


@pytest.mark.asyncio
async def test_redis_adapter_query_with_mock():
    """Test Redis adapter replays the timeline and skips deleted entries."""
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis

        ts = datetime(2025, 1, 1, tzinfo=timezone.utc)
        first = make_event("test.event.1", created_at=ts)
        second = make_event("test.event.2", created_at=ts)

        mock_redis.xrange.return_value = [
            (b"1-0", {b"id": first.id.encode()}),
            (b"2-0", {b"id": b"deleted-id"}),
            (b"3-0", {b"id": second.id.encode()}),
        ]
        mock_redis.hmget.return_value = [
            orjson.dumps(first.model_dump(mode="json")),
            None,
            orjson.dumps(second.model_dump(mode="json")),
        ]

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        page = await adapter.query(EventFilters(limit=10))

        assert page.total == 2
        # Equal timestamps: newest append first
        assert [e.event_type for e in page.events] == ["test.event.2", "test.event.1"]
        mock_redis.xrange.assert_called_once_with("contentpipe:events:timeline")


@pytest.mark.asyncio
async def test_redis_adapter_query_empty_timeline():
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.xrange.return_value = []

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        page = await adapter.query(EventFilters())

        assert page.total == 0
        mock_redis.hmget.assert_not_called()


@pytest.mark.asyncio
async def test_redis_adapter_update_rewrites_hash():
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        event = make_event()
        mock_redis.hget.return_value = orjson.dumps(event.model_dump(mode="json"))

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        updated = await adapter.update(event.id, EventUpdate(message="Edited"))

        assert updated.message == "Edited"
        assert orjson.loads(mock_redis.hset.call_args[0][2])["message"] == "Edited"


@pytest.mark.asyncio
async def test_redis_adapter_delete_missing():
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.hget.return_value = None

        adapter = RedisEventStore(redis_url="redis://localhost:6379")

        assert await adapter.delete("missing") is None
        mock_redis.hdel.assert_not_called()


@pytest.mark.asyncio
async def test_redis_adapter_append_propagates_errors():
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.hset.side_effect = RedisError("connection refused")

        adapter = RedisEventStore(redis_url="redis://localhost:6379")

        with pytest.raises(RedisError):
            await adapter.append(make_event())


@pytest.mark.asyncio
async def test_redis_adapter_health_check_success():
    """Test Redis adapter health check when Redis is available."""
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.return_value = True

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        health = await adapter.health_check()

        assert health is True
        mock_redis.ping.assert_called_once()


@pytest.mark.asyncio
async def test_redis_adapter_health_check_failure():
    """Test Redis adapter health check when Redis is unavailable."""
    with patch("contentpipe.adapters.redis_store.Redis") as mock_redis_class:
        mock_redis = MagicMock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.side_effect = Exception("Connection refused")

        adapter = RedisEventStore(redis_url="redis://localhost:6379")
        health = await adapter.health_check()

        assert health is False
