from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Literal
from datetime import datetime, timezone
import uuid
import orjson

EventCategory = Literal["workflow", "agent", "system", "integration"]
Severity = Literal["debug", "info", "warning", "error", "critical"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def infer_category(event_type: str) -> EventCategory:
    if event_type.startswith("workflow."):
        return "workflow"
    if event_type.startswith("integration."):
        return "integration"
    if event_type.startswith("system."):
        return "system"
    return "agent"


def infer_severity(event_type: str) -> Severity:
    if "error" in event_type:
        return "error"
    if "warning" in event_type:
        return "warning"
    return "info"


def infer_message(event_type: str) -> str:
    """``video.render.start`` -> ``Video Render Start``"""
    words = " ".join(part for part in event_type.split(".") if part)
    return " ".join(word[:1].upper() + word[1:] for word in words.split(" "))


class EventCreate(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=100, description="Dot-namespaced type")
    event_category: EventCategory | None = None
    severity: Severity | None = None
    agent_name: str | None = Field(default=None, min_length=1, max_length=100)
    workflow_id: str | None = Field(default=None, min_length=1, max_length=100)
    correlation_id: str | None = Field(default=None, min_length=1, max_length=100)
    message: str | None = Field(default=None, max_length=500)
    payload: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None
    created_at: datetime | None = None

    @field_validator("event_type")
    @classmethod
    def _strip_type(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("event_type must not be blank")
        return value

    @field_validator("created_at")
    @classmethod
    def _utc_created_at(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class StoredEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utcnow)
    event_type: str
    event_category: EventCategory
    severity: Severity
    agent_name: str | None = None
    workflow_id: str | None = None
    correlation_id: str | None = None
    message: str
    payload: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None

    @classmethod
    def from_create(cls, evt: EventCreate) -> "StoredEvent":
        """Fill in the classification the caller left out."""
        data = evt.model_dump(exclude_none=True)
        data["event_category"] = evt.event_category or infer_category(evt.event_type)
        data["severity"] = evt.severity or infer_severity(evt.event_type)
        data["message"] = evt.message or infer_message(evt.event_type)
        return cls(**data)


class EventUpdate(BaseModel):
    """Administrative changes; identity and timestamp are immutable."""
    event_type: str | None = Field(default=None, min_length=1, max_length=100)
    event_category: EventCategory | None = None
    severity: Severity | None = None
    message: str | None = Field(default=None, max_length=500)
    payload: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None


class EventFilters(BaseModel):
    severity: Severity | None = None
    agent_name: str | None = None
    event_type: str | None = None
    event_category: EventCategory | None = None
    workflow_id: str | None = None
    correlation_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    exclude_id: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    ascending: bool = False

    def matches(self, event: StoredEvent) -> bool:
        """Apply every filter except pagination and ordering."""
        for field in ("severity", "agent_name", "event_type", "event_category",
                      "workflow_id", "correlation_id"):
            expected = getattr(self, field)
            if expected is not None and getattr(event, field) != expected:
                return False
        if self.exclude_id is not None and event.id == self.exclude_id:
            return False
        if self.start_date is not None and event.created_at < as_utc(self.start_date):
            return False
        if self.end_date is not None and event.created_at > as_utc(self.end_date):
            return False
        if self.search and self.search.strip():
            needle = self.search.strip().lower()
            haystack = [event.message.lower()]
            if event.metadata is not None:
                haystack.append(orjson.dumps(event.metadata, default=str).decode().lower())
            if not any(needle in text for text in haystack):
                return False
        return True


class EventPage(BaseModel):
    events: list[StoredEvent]
    total: int
