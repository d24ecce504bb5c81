"""Redis event store adapter.

Events are serialized into a hash keyed by event id; a Redis stream holds the
ids in append order so listings can be replayed without relying on clock
resolution. Administrative deletes remove the hash entry and the stale stream
entry is skipped on read.
"""
import structlog
import orjson
from redis import Redis
from redis.exceptions import RedisError
from .base import EventStoreAdapter, paginate
from ..event_models import EventFilters, EventPage, EventUpdate, StoredEvent
from ..config import get_settings

log = structlog.get_logger()


class RedisEventStore(EventStoreAdapter):
    """Redis implementation of the event log backend."""

    def __init__(self, redis_url: str | None = None, namespace: str = "contentpipe"):
        """
        Initialize Redis event store.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            namespace: Key prefix for the hash and the timeline stream
        """
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self._client: Redis | None = None
        self._events_key = f"{namespace}:events"
        self._timeline_key = f"{namespace}:events:timeline"

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,  # We'll handle encoding ourselves
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    @staticmethod
    def _encode(event: StoredEvent) -> bytes:
        return orjson.dumps(event.model_dump(mode="json"))

    @staticmethod
    def _decode(raw: bytes) -> StoredEvent:
        return StoredEvent.model_validate(orjson.loads(raw))

    async def append(self, event: StoredEvent) -> StoredEvent:
        """
        Store the event and record it on the timeline.

        Raises:
            RedisError: If unable to write to Redis
        """
        try:
            client = self._get_client()
            client.hset(self._events_key, event.id, self._encode(event))
            client.xadd(self._timeline_key, {"id": event.id}, id="*")
            log.debug(
                "event.appended",
                id=event.id,
                type=event.event_type,
                agent=event.agent_name,
                adapter="redis",
            )
            return event
        except RedisError as e:
            log.error("redis.append_failed", error=str(e), event_id=event.id)
            raise

    def _load_all(self) -> list[StoredEvent]:
        client = self._get_client()
        entries = client.xrange(self._timeline_key)
        ids = [data[b"id"] for _, data in entries if b"id" in data]
        if not ids:
            return []
        raw_events = client.hmget(self._events_key, ids)
        return [self._decode(raw) for raw in raw_events if raw is not None]

    async def query(self, filters: EventFilters) -> EventPage:
        try:
            return paginate(self._load_all(), filters)
        except RedisError as e:
            log.error("redis.query_failed", error=str(e))
            raise

    async def get(self, event_id: str) -> StoredEvent | None:
        raw = self._get_client().hget(self._events_key, event_id)
        return self._decode(raw) if raw is not None else None

    async def update(self, event_id: str, changes: EventUpdate) -> StoredEvent | None:
        current = await self.get(event_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes.model_dump(exclude_none=True))
        self._get_client().hset(self._events_key, event_id, self._encode(updated))
        log.info("event.updated", id=event_id, adapter="redis")
        return updated

    async def delete(self, event_id: str) -> StoredEvent | None:
        current = await self.get(event_id)
        if current is None:
            return None
        self._get_client().hdel(self._events_key, event_id)
        log.info("event.deleted", id=event_id, adapter="redis")
        return current

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
