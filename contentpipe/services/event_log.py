"""Append-only event log with pluggable backend adapters."""
from ..event_models import EventCreate, EventFilters, EventPage, EventUpdate, StoredEvent
from ..adapters.base import EventStoreAdapter
from ..adapters.memory import InMemoryEventStore
from ..adapters.redis_store import RedisEventStore
from ..config import get_settings
from ..errors import validation_error
from ..metrics import Metrics, get_metrics
from typing import Any, Mapping
import pydantic
import structlog

log = structlog.get_logger()

MAX_RELATED_EVENTS = 50


def _clamp_limit(limit: int | None, maximum: int = MAX_RELATED_EVENTS) -> int:
    if not isinstance(limit, int) or limit <= 0:
        return maximum
    return min(limit, maximum)


class EventLog:
    """
    Event log service that delegates storage to a backend adapter.

    The adapter is selected based on the EVENT_STORE configuration setting.
    Events are never mutated on the hot path; ``update`` and ``delete`` exist
    for administrative use only.
    """

    def __init__(self, adapter: EventStoreAdapter | None = None, metrics: Metrics | None = None):
        """
        Initialize event log with optional adapter.

        Args:
            adapter: Backend adapter to use (defaults to configured adapter)
            metrics: Prometheus metrics sink (defaults to the process-wide one)
        """
        if adapter is None:
            adapter = _create_default_adapter()
        self._adapter = adapter
        self._metrics = metrics

    @property
    def metrics(self) -> Metrics:
        return self._metrics or get_metrics()

    async def append(self, event: EventCreate | Mapping[str, Any]) -> StoredEvent:
        """
        Validate, classify and persist an event.

        Raises:
            ValidationError: If event_type is missing or the event is malformed
        """
        if not isinstance(event, EventCreate):
            try:
                event = EventCreate.model_validate(dict(event or {}))
            except pydantic.ValidationError as e:
                raise validation_error("Invalid event", e) from e

        stored = await self._adapter.append(StoredEvent.from_create(event))
        self.metrics.record_event_appended(stored.event_category, stored.severity)
        return stored

    async def query(self, filters: EventFilters | None = None, **kwargs: Any) -> EventPage:
        """Filtered, paginated listing; newest-first unless ``ascending`` is set."""
        if filters is None:
            try:
                filters = EventFilters(**kwargs)
            except pydantic.ValidationError as e:
                raise validation_error("Invalid event filters", e) from e
        return await self._adapter.query(filters)

    async def recent(self, limit: int = 50) -> list[StoredEvent]:
        page = await self._adapter.query(EventFilters(limit=limit))
        return page.events

    async def get(self, event_id: str) -> StoredEvent | None:
        return await self._adapter.get(event_id)

    async def list_by_correlation(
        self, correlation_id: str, exclude_id: str | None = None, limit: int | None = MAX_RELATED_EVENTS
    ) -> list[StoredEvent]:
        """Events sharing a correlation id, oldest-first."""
        filters = EventFilters(
            correlation_id=correlation_id,
            exclude_id=exclude_id,
            limit=_clamp_limit(limit),
            ascending=True,
        )
        return (await self._adapter.query(filters)).events

    async def list_by_workflow(
        self, workflow_id: str, exclude_id: str | None = None, limit: int | None = MAX_RELATED_EVENTS
    ) -> list[StoredEvent]:
        """Events sharing a workflow id, oldest-first."""
        filters = EventFilters(
            workflow_id=workflow_id,
            exclude_id=exclude_id,
            limit=_clamp_limit(limit),
            ascending=True,
        )
        return (await self._adapter.query(filters)).events

    async def related_events(self, event: StoredEvent, limit: int = MAX_RELATED_EVENTS) -> list[StoredEvent]:
        """Thread an event with its siblings; correlation id wins over workflow id."""
        if event.correlation_id:
            return await self.list_by_correlation(event.correlation_id, exclude_id=event.id, limit=limit)
        if event.workflow_id:
            return await self.list_by_workflow(event.workflow_id, exclude_id=event.id, limit=limit)
        return []

    async def update(self, event_id: str, changes: EventUpdate | Mapping[str, Any]) -> StoredEvent | None:
        if not isinstance(changes, EventUpdate):
            try:
                changes = EventUpdate.model_validate(dict(changes))
            except pydantic.ValidationError as e:
                raise validation_error("Invalid event update", e) from e
        return await self._adapter.update(event_id, changes)

    async def delete(self, event_id: str) -> StoredEvent | None:
        return await self._adapter.delete(event_id)

    async def health_check(self) -> bool:
        """Check backend adapter health."""
        return await self._adapter.health_check()

    @property
    def backend(self) -> str:
        return "redis" if isinstance(self._adapter, RedisEventStore) else "memory"


def _create_default_adapter() -> EventStoreAdapter:
    """
    Create the default adapter based on configuration.

    Returns:
        EventStoreAdapter instance based on EVENT_STORE setting
    """
    settings = get_settings()
    if settings.EVENT_STORE == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "adapter.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured",
            )
            return InMemoryEventStore()

        log.info("adapter.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisEventStore()

    log.info("adapter.selected", type="memory")
    return InMemoryEventStore()
