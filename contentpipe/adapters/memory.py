"""In-memory event store adapter."""
import structlog
from .base import EventStoreAdapter, paginate
from ..event_models import EventFilters, EventPage, EventUpdate, StoredEvent

log = structlog.get_logger()


class InMemoryEventStore(EventStoreAdapter):
    """In-memory implementation of the event log backend."""

    def __init__(self):
        self._buffer: list[StoredEvent] = []

    async def append(self, event: StoredEvent) -> StoredEvent:
        """Append event to the in-memory buffer."""
        self._buffer.append(event)
        log.debug(
            "event.appended",
            id=event.id,
            type=event.event_type,
            agent=event.agent_name,
            adapter="memory",
        )
        return event

    async def query(self, filters: EventFilters) -> EventPage:
        return paginate(list(self._buffer), filters)

    async def get(self, event_id: str) -> StoredEvent | None:
        for event in self._buffer:
            if event.id == event_id:
                return event
        return None

    async def update(self, event_id: str, changes: EventUpdate) -> StoredEvent | None:
        for index, event in enumerate(self._buffer):
            if event.id == event_id:
                updated = event.model_copy(update=changes.model_dump(exclude_none=True))
                self._buffer[index] = updated
                log.info("event.updated", id=event_id, adapter="memory")
                return updated
        return None

    async def delete(self, event_id: str) -> StoredEvent | None:
        for index, event in enumerate(self._buffer):
            if event.id == event_id:
                del self._buffer[index]
                log.info("event.deleted", id=event_id, adapter="memory")
                return event
        return None

    async def health_check(self) -> bool:
        """In-memory adapter is always healthy."""
        return True

    def __len__(self) -> int:
        return len(self._buffer)
