"""
Agent lifecycle runtime.

Every agent call goes through ``BaseAgent.execute``, which brackets the
business logic in ``run`` with ``agent.start`` and ``agent.success`` /
``agent.error`` events. The run context (workflow id, correlation id) is an
explicit, call-scoped value: it is passed to ``run`` and every helper, and
bound to structlog's contextvars only while the call is in flight, so
concurrent calls on one agent instance never see each other's ids.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, NoReturn, Type, TypeVar
import pydantic
import structlog
from ..config import get_settings
from ..errors import PersistenceError, normalize_error, validation_error
from ..event_models import EventCategory, Severity, StoredEvent
from ..metrics import Metrics, get_metrics
from ..models import AgentNote
from ..services.event_log import EventLog
from ..resilience.fallback import FallbackHook, failure_reason
from ..store.base import AGENT_NOTES, RecordStore

log = structlog.get_logger()

InputT = TypeVar("InputT", bound=pydantic.BaseModel)


def parse_input(model: Type[InputT], data: Any, label: str = "input") -> InputT:
    """Validate raw agent input, mapping pydantic failures onto ``ValidationError``."""
    try:
        return model.model_validate(data if data is not None else {})
    except pydantic.ValidationError as e:
        raise validation_error(f"Invalid {label}", e) from e


def _clean_id(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class RunContext:
    """Correlation identifiers for one agent call."""
    workflow_id: str | None = None
    correlation_id: str | None = None

    @classmethod
    def from_input(cls, data: Any) -> "RunContext":
        """Read ``workflowId``/``workflow_id`` and ``correlationId``/``correlation_id``."""
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            workflow_id=_clean_id(data.get("workflowId")) or _clean_id(data.get("workflow_id")),
            correlation_id=_clean_id(data.get("correlationId")) or _clean_id(data.get("correlation_id")),
        )


class BaseAgent(ABC):
    """
    Base class for pipeline agents.

    Subclasses implement ``run(input, ctx)`` and use ``log_event`` for domain
    progress events. Event logging can be switched off per agent with
    ``logging_enabled=False``.
    """

    name = "BaseAgent"

    def __init__(
        self,
        event_log: EventLog,
        records: RecordStore,
        *,
        logging_enabled: bool | None = None,
        default_note_importance: int | None = None,
        metrics: Metrics | None = None,
    ):
        self.event_log = event_log
        self.records = records
        if logging_enabled is None:
            logging_enabled = get_settings().AGENT_LOGGING_ENABLED
        self.logging_enabled = logging_enabled
        self.default_note_importance = default_note_importance
        self._metrics = metrics

    @property
    def metrics(self) -> Metrics:
        return self._metrics or get_metrics()

    @abstractmethod
    async def run(self, input: Any, ctx: RunContext) -> Any:
        """Business logic of the agent."""
        pass

    async def execute(self, input: Any) -> Any:
        """
        Run the agent under supervision.

        Raises:
            PipelineError: The normalized failure, after ``agent.error`` is logged
        """
        ctx = RunContext.from_input(input)
        started = time.perf_counter()
        active = self.metrics.agent_runs_active.labels(agent=self.name)
        active.inc()
        try:
            with structlog.contextvars.bound_contextvars(
                agent=self.name,
                workflow_id=ctx.workflow_id,
                correlation_id=ctx.correlation_id,
            ):
                return await self._supervise(input, ctx, started)
        finally:
            active.dec()

    async def _supervise(self, input: Any, ctx: RunContext, started: float) -> Any:
        await self._safe_log_event("agent.start", {"input": input}, ctx)
        log.info("agent.run.started")
        try:
            output = await self.run(input, ctx)
        except Exception as e:
            error = normalize_error(e)
            duration = time.perf_counter() - started
            self.metrics.record_agent_run(self.name, "error", duration)
            log.error("agent.run.failed", error=error.message, code=error.code, duration_s=round(duration, 3))
            await self._safe_log_event(
                "agent.error",
                {
                    "input": input,
                    "error": {"message": error.message, "code": error.code, "trace": error.trace},
                },
                ctx,
            )
            if error is e:
                raise
            raise error from e

        duration = time.perf_counter() - started
        self.metrics.record_agent_run(self.name, "success", duration)
        log.info("agent.run.finished", duration_s=round(duration, 3))
        await self._safe_log_event("agent.success", {"input": input, "output": output}, ctx)
        return output

    async def log_event(
        self,
        event_type: str,
        payload: dict[str, Any] | None = None,
        ctx: RunContext | None = None,
        *,
        severity: Severity | None = None,
        category: EventCategory | None = None,
        message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StoredEvent | None:
        """Append an event tagged with this agent and the run context."""
        if not self.logging_enabled:
            return None
        ctx = ctx or RunContext()
        return await self.event_log.append({
            "event_type": event_type,
            "agent_name": self.name,
            "workflow_id": ctx.workflow_id,
            "correlation_id": ctx.correlation_id,
            "severity": severity,
            "event_category": category,
            "message": message,
            "metadata": metadata or {"source": self.name},
            "payload": _jsonable(payload),
        })

    async def _safe_log_event(
        self, event_type: str, payload: dict[str, Any] | None, ctx: RunContext, **kwargs: Any
    ) -> StoredEvent | None:
        """Log an event without letting a logging failure escape."""
        try:
            return await self.log_event(event_type, payload, ctx, **kwargs)
        except Exception as e:
            log.warning("agent.event_log_failed", event_type=event_type, error=str(e))
            return None

    async def handle_error(self, context: str, error: BaseException, ctx: RunContext) -> NoReturn:
        """
        Best-effort log an ``error`` event for ``context``, then raise the
        normalized error.
        """
        normalized = normalize_error(error)
        await self._safe_log_event(
            "error",
            {"context": context, "message": normalized.message, "code": normalized.code, "trace": normalized.trace},
            ctx,
        )
        if normalized is error:
            raise normalized
        raise normalized from error

    async def insert_record(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert into the record store, raising ``PersistenceError`` on failure."""
        try:
            return await self.records.insert(collection, record)
        except Exception as e:
            log.error("record.insert_failed", collection=collection, agent=self.name, error=str(e))
            raise PersistenceError(
                f"Failed to store {collection} record: {e}",
                details={"collection": collection},
            ) from e

    async def store_note(self, topic: str, content: str, importance: int | None = None) -> AgentNote:
        row = await self.insert_record(AGENT_NOTES, {
            "agent_name": self.name,
            "topic": topic,
            "content": content,
            "importance": importance if importance is not None else self.default_note_importance,
        })
        return AgentNote.model_validate(row)

    def fallback_hook(self, ctx: RunContext) -> FallbackHook:
        """Hook for the model fallback chain: logs ``integration.model.fallback``."""

        async def on_fallback(primary_model: str, fallback_model: str, error: BaseException) -> None:
            reason = failure_reason(error)
            self.metrics.record_model_fallback(primary_model, fallback_model, reason)
            await self._safe_log_event(
                "integration.model.fallback",
                {
                    "primary_model": primary_model,
                    "fallback_model": fallback_model,
                    "reason": reason,
                    "message": str(error),
                },
                ctx,
                severity="warning",
            )

        return on_fallback


def _jsonable(value: Any) -> Any:
    """Reduce pydantic models nested in payloads to plain data."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
