"""Process-wide service instances used by the HTTP layer."""
from functools import lru_cache
from ..agents.base import BaseAgent
from ..agents.editor import EditorAgent
from ..agents.publisher import PublisherAgent
from ..agents.scriptwriter import ScriptwriterAgent
from ..errors import NotFoundError
from ..services.analytics import AnalyticsService
from ..services.event_log import EventLog
from ..store.base import RecordStore
from ..store.memory import InMemoryRecordStore

AGENT_REGISTRY: dict[str, type[BaseAgent]] = {
    agent.name: agent for agent in (ScriptwriterAgent, EditorAgent, PublisherAgent)
}


@lru_cache(maxsize=1)
def get_event_log() -> EventLog:
    return EventLog()


@lru_cache(maxsize=1)
def get_record_store() -> RecordStore:
    return InMemoryRecordStore()


@lru_cache(maxsize=1)
def get_analytics() -> AnalyticsService:
    return AnalyticsService(get_record_store(), get_event_log())


@lru_cache(maxsize=None)
def get_agent(name: str) -> BaseAgent:
    """
    Shared agent instance by name.

    Raises:
        NotFoundError: Unknown agent name
    """
    agent_cls = AGENT_REGISTRY.get(name)
    if agent_cls is None:
        raise NotFoundError(f"Agent {name} is not registered", details={"known": sorted(AGENT_REGISTRY)})
    return agent_cls(get_event_log(), get_record_store())


def reset_dependencies():
    """Drop cached instances (tests swap settings between cases)."""
    for getter in (get_event_log, get_record_store, get_analytics, get_agent):
        getter.cache_clear()
