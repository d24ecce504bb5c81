"""Base adapter interface for event store backends."""
from abc import ABC, abstractmethod
from ..event_models import EventFilters, EventPage, EventUpdate, StoredEvent


class EventStoreAdapter(ABC):
    """Abstract interface for event log backend implementations."""

    @abstractmethod
    async def append(self, event: StoredEvent) -> StoredEvent:
        """
        Persist a fully classified event.

        Args:
            event: The event to store (id and created_at already assigned)

        Returns:
            The stored event
        """
        pass

    @abstractmethod
    async def query(self, filters: EventFilters) -> EventPage:
        """
        Retrieve events matching the filters.

        Args:
            filters: Field filters, pagination and ordering

        Returns:
            Page of events plus the total count before pagination
        """
        pass

    @abstractmethod
    async def get(self, event_id: str) -> StoredEvent | None:
        """Fetch a single event by id."""
        pass

    @abstractmethod
    async def update(self, event_id: str, changes: EventUpdate) -> StoredEvent | None:
        """Apply administrative changes; returns None when the event is absent."""
        pass

    @abstractmethod
    async def delete(self, event_id: str) -> StoredEvent | None:
        """Remove an event; returns the removed event or None."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass


def paginate(events: list[StoredEvent], filters: EventFilters) -> EventPage:
    """
    Order, count and slice events already loaded in append order.

    Equal timestamps keep append order when ascending and reversed append
    order when descending, so newest-first listings stay newest-first.
    """
    matching = [event for event in events if filters.matches(event)]
    if filters.ascending:
        ordered = sorted(matching, key=lambda e: e.created_at)
    else:
        ordered = sorted(reversed(matching), key=lambda e: e.created_at, reverse=True)
    window = ordered[filters.offset:filters.offset + filters.limit]
    return EventPage(events=window, total=len(matching))
