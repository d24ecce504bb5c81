"""
Run status derived from the event log.

Status is never stored: it is recomputed on demand by replaying the most
recent events of an entity (agent name or workflow id) newest-first. Only
decisive events count:

- any type containing ``error``            -> ``error``
- ``*.start`` or ``start``                 -> ``running``
- ``*.success`` / ``*.end`` / ``*.complete(d)`` -> ``idle``

Progress events (``context.product_loaded``, ``db.script_stored`` ...) are
skipped, so an in-flight run stays ``running`` while it reports progress.
A start older than ``stale_after`` with nothing after it is reported idle.
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Literal
from pydantic import BaseModel
from ..event_models import EventFilters, StoredEvent, utcnow
from ..services.event_log import EventLog

RunStatus = Literal["idle", "running", "error"]
Scope = Literal["agent", "workflow"]

TERMINAL_SUFFIXES = (".success", ".end", ".complete", ".completed")

AGENT_CATALOG = ("EditorAgent", "PublisherAgent", "ScriptwriterAgent")
WORKFLOW_CATALOG = (
    "content-cycle",
    "trend-refresh",
    "publish-only",
    "optimization-cycle",
    "analytics-ingestion",
)

DEFAULT_LOOKBACK = 200


class StatusRow(BaseModel):
    entity_id: str
    status: RunStatus = "idle"
    last_event_type: str | None = None
    last_event_time: datetime | None = None


def classify(event_type: str | None) -> RunStatus | None:
    """Status implied by one event type, or None when it is not decisive."""
    if not event_type:
        return None
    if "error" in event_type:
        return "error"
    if event_type == "start" or event_type.endswith(".start"):
        return "running"
    if event_type.endswith(TERMINAL_SUFFIXES):
        return "idle"
    return None


def derive_status(
    events: Iterable[StoredEvent],
    stale_after: timedelta | None = None,
    now: datetime | None = None,
) -> RunStatus:
    """
    Status from events ordered newest-first.

    Args:
        events: Events of one entity, newest first
        stale_after: Report a dangling start older than this as idle
        now: Reference time for ``stale_after``
    """
    for event in events:
        status = classify(event.event_type)
        if status is None:
            continue
        if status == "running" and stale_after is not None:
            if (now or utcnow()) - event.created_at > stale_after:
                return "idle"
        return status
    return "idle"


def _row(entity_id: str, events: List[StoredEvent], stale_after: timedelta | None, now: datetime | None) -> StatusRow:
    latest = events[0] if events else None
    return StatusRow(
        entity_id=entity_id,
        status=derive_status(events, stale_after, now),
        last_event_type=latest.event_type if latest else None,
        last_event_time=latest.created_at if latest else None,
    )


async def entity_status(
    event_log: EventLog,
    entity: str,
    scope: Scope = "agent",
    limit: int = 50,
    stale_after: timedelta | None = None,
    now: datetime | None = None,
) -> StatusRow:
    """Status of one agent (by name) or workflow (by id) from its last ``limit`` events."""
    if scope == "workflow":
        filters = EventFilters(workflow_id=entity, limit=limit)
    else:
        filters = EventFilters(agent_name=entity, limit=limit)
    page = await event_log.query(filters)
    return _row(entity, page.events, stale_after, now)


def resolve_workflow_id(event: StoredEvent, known: Iterable[str] = WORKFLOW_CATALOG) -> str | None:
    """Workflow an event belongs to: explicit id, then payload, then a catalog id named by the event."""
    if event.workflow_id:
        return event.workflow_id
    known = set(known)
    payload = event.payload or {}
    for key in ("workflow_id", "workflowId", "workflow"):
        candidate = payload.get(key)
        if isinstance(candidate, str) and candidate in known:
            return candidate
    for workflow_id in sorted(known):
        if workflow_id in event.event_type:
            return workflow_id
    if event.agent_name in known:
        return event.agent_name
    return None


def _rows_by_entity(
    grouped: dict[str, List[StoredEvent]],
    stale_after: timedelta | None,
    now: datetime | None,
) -> List[StatusRow]:
    return [_row(entity_id, grouped[entity_id], stale_after, now) for entity_id in sorted(grouped)]


async def list_agent_statuses(
    event_log: EventLog,
    catalog: Iterable[str] = AGENT_CATALOG,
    lookback: int = DEFAULT_LOOKBACK,
    stale_after: timedelta | None = None,
    now: datetime | None = None,
) -> List[StatusRow]:
    """One row per catalog agent plus any other agent seen in the last ``lookback`` events."""
    grouped: dict[str, List[StoredEvent]] = {name: [] for name in catalog}
    for event in await event_log.recent(lookback):
        if event.agent_name:
            grouped.setdefault(event.agent_name, []).append(event)
    return _rows_by_entity(grouped, stale_after, now)


async def list_workflow_statuses(
    event_log: EventLog,
    catalog: Iterable[str] = WORKFLOW_CATALOG,
    lookback: int = DEFAULT_LOOKBACK,
    stale_after: timedelta | None = None,
    now: datetime | None = None,
) -> List[StatusRow]:
    """One row per catalog workflow, from workflow events in the last ``lookback`` events."""
    catalog = list(catalog)
    grouped: dict[str, List[StoredEvent]] = {workflow_id: [] for workflow_id in catalog}
    for event in await event_log.recent(lookback):
        if event.event_category != "workflow" and not event.event_type.startswith("workflow."):
            continue
        workflow_id = resolve_workflow_id(event, catalog)
        if workflow_id:
            grouped.setdefault(workflow_id, []).append(event)
    return _rows_by_entity(grouped, stale_after, now)
