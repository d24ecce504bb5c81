"""Tests for the event log service."""
import pytest
from datetime import datetime, timedelta, timezone
from contentpipe.errors import ValidationError
from contentpipe.event_models import EventCreate, EventFilters

T0 = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_append_infers_classification(event_log):
    stored = await event_log.append({"event_type": "video.render.start", "agent_name": "EditorAgent"})

    assert stored.id
    assert stored.created_at.tzinfo is not None
    assert stored.event_category == "agent"
    assert stored.severity == "info"
    assert stored.message == "Video Render Start"


@pytest.mark.asyncio
async def test_append_infers_category_from_prefix(event_log):
    workflow = await event_log.append({"event_type": "workflow.start"})
    integration = await event_log.append({"event_type": "integration.model.fallback"})
    system = await event_log.append({"event_type": "system.retry"})

    assert workflow.event_category == "workflow"
    assert integration.event_category == "integration"
    assert system.event_category == "system"


@pytest.mark.asyncio
async def test_append_infers_severity(event_log):
    error = await event_log.append({"event_type": "script.generate.error"})
    warning = await event_log.append({"event_type": "quota.warning"})

    assert error.severity == "error"
    assert warning.severity == "warning"


@pytest.mark.asyncio
async def test_append_keeps_explicit_values(event_log):
    stored = await event_log.append(EventCreate(
        event_type="custom.thing",
        severity="critical",
        event_category="system",
        message="Disk on fire",
    ))

    assert stored.severity == "critical"
    assert stored.event_category == "system"
    assert stored.message == "Disk on fire"


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [{}, {"event_type": ""}, {"event_type": "   "}])
async def test_append_rejects_missing_event_type(event_log, event):
    with pytest.raises(ValidationError):
        await event_log.append(event)


@pytest.mark.asyncio
async def test_append_records_metric(event_log, metrics):
    await event_log.append({"event_type": "publish.error"})

    value = metrics.registry.get_sample_value(
        "contentpipe_events_appended_total", {"event_category": "agent", "severity": "error"}
    )
    assert value == 1.0


@pytest.mark.asyncio
async def test_query_newest_first_with_total(event_log):
    for i in range(5):
        await event_log.append({"event_type": f"step.{i}", "created_at": T0 + timedelta(minutes=i)})

    page = await event_log.query(limit=2)

    assert page.total == 5
    assert [e.event_type for e in page.events] == ["step.4", "step.3"]


@pytest.mark.asyncio
async def test_query_ascending_and_offset(event_log):
    for i in range(5):
        await event_log.append({"event_type": f"step.{i}", "created_at": T0 + timedelta(minutes=i)})

    page = await event_log.query(ascending=True, offset=1, limit=2)

    assert [e.event_type for e in page.events] == ["step.1", "step.2"]
    assert page.total == 5


@pytest.mark.asyncio
async def test_query_equal_timestamps_keep_append_order(event_log):
    for name in ("a.first", "a.second", "a.third"):
        await event_log.append({"event_type": name, "created_at": T0})

    ascending = await event_log.query(ascending=True)
    descending = await event_log.query()

    assert [e.event_type for e in ascending.events] == ["a.first", "a.second", "a.third"]
    assert [e.event_type for e in descending.events] == ["a.third", "a.second", "a.first"]


@pytest.mark.asyncio
async def test_query_filters_combine(event_log):
    await event_log.append({"event_type": "video.render.error", "agent_name": "EditorAgent", "workflow_id": "wf-1"})
    await event_log.append({"event_type": "video.render.start", "agent_name": "EditorAgent", "workflow_id": "wf-1"})
    await event_log.append({"event_type": "script.generate.error", "agent_name": "ScriptwriterAgent"})

    page = await event_log.query(severity="error", agent_name="EditorAgent")

    assert page.total == 1
    assert page.events[0].event_type == "video.render.error"


@pytest.mark.asyncio
async def test_query_time_range_is_inclusive(event_log):
    for i in range(4):
        await event_log.append({"event_type": f"tick.{i}", "created_at": T0 + timedelta(hours=i)})

    page = await event_log.query(
        start_date=T0 + timedelta(hours=1), end_date=T0 + timedelta(hours=2), ascending=True
    )

    assert [e.event_type for e in page.events] == ["tick.1", "tick.2"]


@pytest.mark.asyncio
async def test_query_search_matches_message_and_metadata(event_log):
    await event_log.append({"event_type": "a.one", "message": "Upload to BUCKET failed"})
    await event_log.append({"event_type": "a.two", "metadata": {"bucket": "assets-prod"}})
    await event_log.append({"event_type": "a.three", "message": "unrelated"})

    page = await event_log.query(search="bucket")

    assert {e.event_type for e in page.events} == {"a.one", "a.two"}


@pytest.mark.asyncio
async def test_query_rejects_bad_filters(event_log):
    with pytest.raises(ValidationError):
        await event_log.query(limit=0)


@pytest.mark.asyncio
async def test_list_by_correlation_oldest_first_excluding(event_log):
    first = await event_log.append({"event_type": "x.start", "correlation_id": "c-1", "created_at": T0})
    await event_log.append({"event_type": "x.step", "correlation_id": "c-1", "created_at": T0 + timedelta(seconds=1)})
    await event_log.append({"event_type": "x.end", "correlation_id": "c-1", "created_at": T0 + timedelta(seconds=2)})
    await event_log.append({"event_type": "other", "correlation_id": "c-2"})

    events = await event_log.list_by_correlation("c-1", exclude_id=first.id)

    assert [e.event_type for e in events] == ["x.step", "x.end"]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit,expected", [(0, 50), (-3, 50), (500, 50), (7, 7)])
async def test_related_limit_is_clamped(event_log, limit, expected):
    for i in range(60):
        await event_log.append({"event_type": f"w.{i}", "workflow_id": "wf-9", "created_at": T0 + timedelta(seconds=i)})

    events = await event_log.list_by_workflow("wf-9", limit=limit)

    assert len(events) == expected
    assert events[0].event_type == "w.0"


@pytest.mark.asyncio
async def test_related_events_prefers_correlation(event_log):
    await event_log.append({"event_type": "same.workflow", "workflow_id": "wf-1"})
    sibling = await event_log.append({"event_type": "same.correlation", "correlation_id": "c-1"})
    event = await event_log.append({"event_type": "target", "workflow_id": "wf-1", "correlation_id": "c-1"})

    related = await event_log.related_events(event)

    assert [e.id for e in related] == [sibling.id]


@pytest.mark.asyncio
async def test_related_events_falls_back_to_workflow(event_log):
    sibling = await event_log.append({"event_type": "same.workflow", "workflow_id": "wf-1"})
    event = await event_log.append({"event_type": "target", "workflow_id": "wf-1"})

    assert [e.id for e in await event_log.related_events(event)] == [sibling.id]


@pytest.mark.asyncio
async def test_related_events_empty_without_ids(event_log):
    event = await event_log.append({"event_type": "lonely"})

    assert await event_log.related_events(event) == []


@pytest.mark.asyncio
async def test_get_update_delete(event_log):
    stored = await event_log.append({"event_type": "admin.target"})

    assert (await event_log.get(stored.id)).id == stored.id

    updated = await event_log.update(stored.id, {"message": "Edited"})
    assert updated.message == "Edited"
    assert updated.created_at == stored.created_at

    deleted = await event_log.delete(stored.id)
    assert deleted.id == stored.id
    assert await event_log.get(stored.id) is None
    assert await event_log.update(stored.id, {"message": "gone"}) is None


@pytest.mark.asyncio
async def test_recent_returns_newest_first(event_log):
    await event_log.append({"event_type": "old", "created_at": T0})
    await event_log.append({"event_type": "new", "created_at": T0 + timedelta(minutes=1)})

    events = await event_log.recent(limit=1)

    assert [e.event_type for e in events] == ["new"]


def test_event_filters_defaults():
    filters = EventFilters()

    assert filters.limit == 100
    assert filters.offset == 0
    assert filters.ascending is False
