from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal
from datetime import datetime
from ..event_models import StoredEvent
from ..projections.status import StatusRow


class EventListResponse(BaseModel):
    total: int
    limit: int
    offset: int
    events: List[StoredEvent]


class EventDetailResponse(BaseModel):
    event: StoredEvent
    related: List[StoredEvent] = Field(default_factory=list)


class StatusListResponse(BaseModel):
    items: List[StatusRow]


class AgentRunRequest(BaseModel):
    input: Dict[str, Any] = Field(default_factory=dict)
    workflow_id: str | None = Field(default=None, min_length=1, max_length=100)
    correlation_id: str | None = Field(default=None, min_length=1, max_length=100)


class AgentRunResponse(BaseModel):
    agent: str
    status: Literal["completed"] = "completed"
    started_at: datetime
    finished_at: datetime
    output: Any = None


class WorkflowStartRequest(BaseModel):
    input: Dict[str, Any] | None = None
    correlation_id: str | None = Field(default=None, min_length=1, max_length=100)


class WorkflowStartResponse(BaseModel):
    workflow: str
    status: Literal["started"] = "started"
    event_id: str
    correlation_id: str | None = None
