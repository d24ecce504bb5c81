"""Tests for the agent lifecycle runtime."""
import asyncio
import pytest
import structlog
from pydantic import BaseModel
from unittest.mock import AsyncMock, patch
from contentpipe.agents.base import BaseAgent, RunContext, parse_input
from contentpipe.errors import (
    NotFoundError,
    PersistenceError,
    ProviderError,
    ProviderErrorKind,
    UnknownError,
    ValidationError,
)
from contentpipe.store.base import AGENT_NOTES


class EchoInput(BaseModel):
    text: str


class EchoAgent(BaseAgent):
    name = "EchoAgent"

    async def run(self, input, ctx):
        data = parse_input(EchoInput, input)
        await self.log_event("echo.step", {"text": data.text}, ctx)
        return {"echo": data.text, "bound": dict(structlog.contextvars.get_contextvars())}


class FailingAgent(BaseAgent):
    name = "FailingAgent"

    def __init__(self, *args, error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.error = error or RuntimeError("kaboom")

    async def run(self, input, ctx):
        try:
            raise self.error
        except Exception as e:
            await self._safe_log_event("echo.error", {"message": str(e)}, ctx)
            await self.handle_error(f"{self.name}.run", e, ctx)


@pytest.fixture
def agent(event_log, records, metrics):
    return EchoAgent(event_log, records, metrics=metrics)


async def event_types(event_log):
    page = await event_log.query(ascending=True)
    return [e.event_type for e in page.events]


def test_run_context_reads_both_key_styles():
    assert RunContext.from_input({"workflowId": "wf-1", "correlation_id": "c-1"}) == RunContext("wf-1", "c-1")
    assert RunContext.from_input({"workflow_id": " wf-2 ", "correlationId": ""}) == RunContext("wf-2", None)
    assert RunContext.from_input(None) == RunContext()
    assert RunContext.from_input("not a mapping") == RunContext()


def test_parse_input_maps_to_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        parse_input(EchoInput, {"text": 5}, label="echo input")

    assert exc_info.value.message == "Invalid echo input"
    assert exc_info.value.details["errors"]


@pytest.mark.asyncio
async def test_execute_brackets_run_with_lifecycle_events(agent, event_log):
    result = await agent.execute({"text": "hi", "workflowId": "wf-1", "correlationId": "c-1"})

    assert result["echo"] == "hi"
    assert await event_types(event_log) == ["agent.start", "echo.step", "agent.success"]

    events = (await event_log.query(ascending=True)).events
    assert all(e.agent_name == "EchoAgent" for e in events)
    assert all(e.workflow_id == "wf-1" and e.correlation_id == "c-1" for e in events)
    assert events[0].payload["input"]["text"] == "hi"
    assert events[-1].payload["output"]["echo"] == "hi"
    assert events[1].metadata == {"source": "EchoAgent"}


@pytest.mark.asyncio
async def test_execute_binds_context_only_while_running(agent):
    result = await agent.execute({"text": "hi", "workflowId": "wf-1", "correlationId": "c-1"})

    assert result["bound"]["agent"] == "EchoAgent"
    assert result["bound"]["workflow_id"] == "wf-1"
    assert result["bound"]["correlation_id"] == "c-1"
    assert "workflow_id" not in structlog.contextvars.get_contextvars()


@pytest.mark.asyncio
async def test_concurrent_calls_keep_their_own_ids(agent, event_log):
    await asyncio.gather(*[
        agent.execute({"text": f"t{i}", "workflowId": f"wf-{i}", "correlationId": f"c-{i}"})
        for i in range(5)
    ])

    for i in range(5):
        events = await event_log.list_by_correlation(f"c-{i}")
        assert len(events) == 3
        assert {e.workflow_id for e in events} == {f"wf-{i}"}


@pytest.mark.asyncio
async def test_execute_records_run_metrics(agent, metrics):
    await agent.execute({"text": "hi"})

    assert metrics.registry.get_sample_value(
        "contentpipe_agent_runs_total", {"agent": "EchoAgent", "outcome": "success"}
    ) == 1.0
    assert metrics.registry.get_sample_value(
        "contentpipe_agent_runs_active", {"agent": "EchoAgent"}
    ) == 0.0


@pytest.mark.asyncio
async def test_validation_failure_emits_agent_error(agent, event_log):
    with pytest.raises(ValidationError):
        await agent.execute({"text": None})

    events = (await event_log.query(ascending=True)).events
    assert [e.event_type for e in events] == ["agent.start", "agent.error"]
    error = events[-1].payload["error"]
    assert error["code"] == "VALIDATION"
    assert error["message"] == "Invalid input"
    assert events[-1].severity == "error"


@pytest.mark.asyncio
async def test_handle_error_normalizes_and_logs(event_log, records, metrics):
    agent = FailingAgent(event_log, records, metrics=metrics)

    with pytest.raises(UnknownError) as exc_info:
        await agent.execute({"correlationId": "c-9"})

    assert exc_info.value.message == "kaboom"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert await event_types(event_log) == ["agent.start", "echo.error", "error", "agent.error"]

    error_event = (await event_log.query(event_type="error")).events[0]
    assert error_event.payload["context"] == "FailingAgent.run"
    assert error_event.payload["code"] == "UNKNOWN"
    assert "RuntimeError" in error_event.payload["trace"]

    assert metrics.registry.get_sample_value(
        "contentpipe_agent_runs_total", {"agent": "FailingAgent", "outcome": "error"}
    ) == 1.0


@pytest.mark.asyncio
async def test_pipeline_errors_pass_through_unchanged(event_log, records, metrics):
    original = NotFoundError("Script s-1 not found")
    agent = FailingAgent(event_log, records, metrics=metrics, error=original)

    with pytest.raises(NotFoundError) as exc_info:
        await agent.execute({})

    assert exc_info.value is original


@pytest.mark.asyncio
async def test_domain_event_failures_propagate(records, metrics):
    broken_log = AsyncMock()
    broken_log.append.side_effect = ConnectionError("store down")
    agent = EchoAgent(broken_log, records, metrics=metrics)

    with pytest.raises(UnknownError):
        await agent.execute({"text": "hi"})

    # agent.start, echo.step, agent.error
    assert broken_log.append.await_count == 3


@pytest.mark.asyncio
async def test_lifecycle_events_tolerate_log_failures(records, metrics):
    broken_log = AsyncMock()
    broken_log.append.side_effect = ConnectionError("store down")
    agent = FailingAgent(
        broken_log, records, metrics=metrics, error=NotFoundError("Product p-1 not found")
    )

    with pytest.raises(NotFoundError):
        await agent.execute({})


@pytest.mark.asyncio
async def test_logging_disabled_writes_nothing(event_log, records, metrics):
    agent = EchoAgent(event_log, records, metrics=metrics, logging_enabled=False)

    result = await agent.execute({"text": "quiet"})

    assert result["echo"] == "quiet"
    assert (await event_log.query()).total == 0


@pytest.mark.asyncio
async def test_store_note_uses_default_importance(event_log, records, metrics):
    agent = EchoAgent(event_log, records, metrics=metrics, default_note_importance=3)

    note = await agent.store_note("hooks", "Questions outperform statements")
    explicit = await agent.store_note("hooks", "Keep it short", importance=5)

    assert note.importance == 3
    assert note.agent_name == "EchoAgent"
    assert explicit.importance == 5
    assert len(await records.select(AGENT_NOTES)) == 2


@pytest.mark.asyncio
async def test_store_note_failure_raises_persistence_error(event_log, records, metrics):
    agent = EchoAgent(event_log, records, metrics=metrics)

    with patch.object(records, "insert", AsyncMock(side_effect=ConnectionError("db offline"))):
        with pytest.raises(PersistenceError) as exc_info:
            await agent.store_note("hooks", "Questions outperform statements")

    assert exc_info.value.code == "PERSISTENCE"
    assert exc_info.value.details == {"collection": AGENT_NOTES}
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert "db offline" in exc_info.value.message


@pytest.mark.asyncio
async def test_fallback_hook_logs_integration_event(agent, event_log, metrics):
    hook = agent.fallback_hook(RunContext(workflow_id="wf-1"))

    await hook("gpt-5", "gpt-4.1-mini", ProviderError(ProviderErrorKind.TIMEOUT, "timed out"))

    event = (await event_log.query()).events[0]
    assert event.event_type == "integration.model.fallback"
    assert event.event_category == "integration"
    assert event.severity == "warning"
    assert event.workflow_id == "wf-1"
    assert event.payload == {
        "primary_model": "gpt-5",
        "fallback_model": "gpt-4.1-mini",
        "reason": "timeout",
        "message": "timed out",
    }
    assert metrics.registry.get_sample_value(
        "contentpipe_model_fallbacks_total",
        {"primary_model": "gpt-5", "fallback_model": "gpt-4.1-mini", "reason": "timeout"},
    ) == 1.0
