"""In-memory record store.

Rows are copied on the way in and out so callers never share mutable state
with the store.
"""
import copy
import uuid
from collections import defaultdict
from typing import Any
import structlog
from .base import RecordFilter, RecordStore
from ..event_models import utcnow

log = structlog.get_logger()


def _sort_key(value: Any) -> tuple:
    # None sorts before other values ascending and after them descending
    return (value is not None, value)


class InMemoryRecordStore(RecordStore):
    """Dict-backed implementation of the record store."""

    def __init__(self, seed: dict[str, list[dict[str, Any]]] | None = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        for collection, rows in (seed or {}).items():
            for row in rows:
                row = dict(row)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", utcnow())
                self._collections[collection][row["id"]] = row
        log.info("records.store.initialized", backend="memory")

    async def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(record)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", utcnow())
        self._collections[collection][row["id"]] = row
        log.debug("record.inserted", collection=collection, id=row["id"])
        return copy.deepcopy(row)

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        row = self._collections[collection].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def select(
        self,
        collection: str,
        filters: list[RecordFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        rows = [
            row for row in self._collections[collection].values()
            if all(f.matches(row) for f in filters or [])
        ]
        if order_by:
            rows.sort(key=lambda row: _sort_key(row.get(order_by)), reverse=descending)
        end = offset + limit if limit is not None else None
        return [copy.deepcopy(row) for row in rows[offset:end]]

    async def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        row = self._collections[collection].get(record_id)
        if row is None:
            return None
        row.update(copy.deepcopy(changes))
        row["id"] = record_id
        log.debug("record.updated", collection=collection, id=record_id)
        return copy.deepcopy(row)

    async def delete(self, collection: str, record_id: str) -> dict[str, Any] | None:
        row = self._collections[collection].pop(record_id, None)
        if row is not None:
            log.debug("record.deleted", collection=collection, id=record_id)
        return row

    async def health_check(self) -> bool:
        return True
