"""Domain records persisted in the record store."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal
from datetime import datetime

Platform = Literal["instagram", "tiktok", "youtube", "facebook", "linkedin", "x"]


class Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_at: datetime | None = None


class Product(Record):
    name: str
    description: str | None = None
    category: str | None = None
    source_platform: str | None = None


class Pattern(Record):
    """Reusable creative pattern (hook style, structure, tone)."""
    name: str
    hook_style: str | None = None
    structure: str | None = None
    tone: str | None = None
    tags: List[str] = Field(default_factory=list)


class Trend(Record):
    topic: str
    category: str | None = None
    score: float = 0.0
    tags: List[str] = Field(default_factory=list)
    captured_at: datetime | None = None


class Script(Record):
    product_id: str
    pattern_id: str | None = None
    title: str | None = None
    hook: str | None = None
    outline: List[str] = Field(default_factory=list)
    script_text: str
    cta: str | None = None
    creative_variables: Dict[str, Any] | None = None


class AgentNote(Record):
    agent_name: str
    topic: str
    content: str
    importance: int | None = None


class VideoAsset(Record):
    script_id: str | None = None
    storage_path: str
    url: str | None = None
    duration_seconds: int | None = None
    thumbnail_path: str | None = None
    style_tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] | None = None


class Experiment(Record):
    asset_id: str | None = None
    script_id: str | None = None
    product_id: str | None = None
    hypothesis: str | None = None
    variation_label: str | None = None


class PublishedPost(Record):
    experiment_id: str | None = None
    platform: str
    external_id: str | None = None
    url: str | None = None
    posted_at: datetime | None = None


class PerformanceMetric(Record):
    post_id: str | None = None
    view_count: int | None = None
    like_count: int | None = None
    comment_count: int | None = None
    share_count: int | None = None
    watch_time_ms: int | None = None
    collected_at: datetime | None = None
