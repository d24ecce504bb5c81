"""Record store interface consumed by agents and analytics.

Collections are plain named sets of dict rows keyed by ``id``. Filters cover
the exact-match, range and set-membership lookups the pipeline needs.
"""
from abc import ABC, abstractmethod
from typing import Any, Literal
from pydantic import BaseModel

# Collection names
PRODUCTS = "products"
PATTERNS = "patterns"
TRENDS = "trends"
SCRIPTS = "scripts"
AGENT_NOTES = "agent_notes"
VIDEO_ASSETS = "video_assets"
EXPERIMENTS = "experiments"
PUBLISHED_POSTS = "published_posts"
PERFORMANCE_METRICS = "performance_metrics"


class RecordFilter(BaseModel):
    """Single predicate on a row field."""
    field: str
    op: Literal["eq", "neq", "gte", "lte", "in"] = "eq"
    value: Any

    def matches(self, row: dict[str, Any]) -> bool:
        current = row.get(self.field)
        if self.op == "eq":
            return current == self.value
        if self.op == "neq":
            return current != self.value
        if self.op == "in":
            return current in self.value
        if current is None:
            return False
        if self.op == "gte":
            return current >= self.value
        return current <= self.value


def eq(field: str, value: Any) -> RecordFilter:
    return RecordFilter(field=field, op="eq", value=value)


def gte(field: str, value: Any) -> RecordFilter:
    return RecordFilter(field=field, op="gte", value=value)


def lte(field: str, value: Any) -> RecordFilter:
    return RecordFilter(field=field, op="lte", value=value)


def in_(field: str, values: list[Any]) -> RecordFilter:
    return RecordFilter(field=field, op="in", value=list(values))


class RecordStore(ABC):
    """Abstract interface for the relational data store."""

    @abstractmethod
    async def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a row; assigns ``id`` and ``created_at`` when absent."""
        pass

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Fetch a row by id."""
        pass

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: list[RecordFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Filter, order and paginate rows of a collection."""
        pass

    @abstractmethod
    async def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        """Merge changes into a row; returns None when the row is absent."""
        pass

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Remove a row; returns the removed row or None."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
