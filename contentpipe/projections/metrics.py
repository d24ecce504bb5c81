"""Pure aggregation, trend and health functions over performance rows and events."""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Literal, Mapping
from pydantic import BaseModel
from ..event_models import StoredEvent, as_utc

Granularity = Literal["hour", "day", "week"]
TrendDirection = Literal["up", "down", "stable"]
SystemHealth = Literal["healthy", "degraded", "down"]

DEFAULT_TREND_THRESHOLD = 0.1
TOP_EXPERIMENTS = 5
CRITICAL_EVENTS_DOWN = 5


def _number(value: Any) -> float:
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def engagement(metric: Mapping[str, Any]) -> float:
    return _number(metric.get("like_count")) + _number(metric.get("comment_count")) + _number(metric.get("share_count"))


def performance_score(metric: Mapping[str, Any]) -> float:
    """Weighted score: views*0.3 + likes*2 + comments*3 + shares*4."""
    return (
        _number(metric.get("view_count")) * 0.3
        + _number(metric.get("like_count")) * 2
        + _number(metric.get("comment_count")) * 3
        + _number(metric.get("share_count")) * 4
    )


def percent_change(current: float, previous: float) -> float:
    previous = _number(previous)
    if previous == 0:
        return 0
    return (_number(current) - previous) / previous * 100


def trend_direction(current: float, previous: float, threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendDirection:
    current, previous = _number(current), _number(previous)
    if previous == 0:
        return "stable" if current == 0 else "up"
    ratio = (current - previous) / previous
    if ratio >= threshold:
        return "up"
    if ratio <= -threshold:
        return "down"
    return "stable"


def bucket_start(moment: datetime, granularity: Granularity) -> datetime:
    """Start of the UTC bucket containing ``moment``; weeks start on Monday."""
    moment = as_utc(moment)
    if granularity == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    return day


def _step(granularity: Granularity) -> timedelta:
    return {"hour": timedelta(hours=1), "day": timedelta(days=1), "week": timedelta(weeks=1)}[granularity]


class MetricBucket(BaseModel):
    bucket_start: datetime
    views: float = 0
    engagement: float = 0


def _collected_at(metric: Mapping[str, Any]) -> datetime | None:
    value = metric.get("collected_at")
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return as_utc(value) if isinstance(value, datetime) else None


def time_buckets(
    metrics: Iterable[Mapping[str, Any]],
    granularity: Granularity,
    start: datetime | None = None,
    end: datetime | None = None,
) -> List[MetricBucket]:
    """
    Zero-filled time series of views and engagement.

    The range is inclusive at both ends. Without an explicit range it spans the
    earliest to the latest ``collected_at``; with no dated rows the series is empty.
    """
    metrics = list(metrics)
    if start is None or end is None:
        dates = sorted(d for d in (_collected_at(m) for m in metrics) if d is not None)
        if not dates:
            return []
        start, end = start or dates[0], end or dates[-1]
    start, end = as_utc(start), as_utc(end)
    if start > end:
        return []

    buckets: dict[datetime, MetricBucket] = {}
    cursor, last = bucket_start(start, granularity), bucket_start(end, granularity)
    step = _step(granularity)
    while cursor <= last:
        buckets[cursor] = MetricBucket(bucket_start=cursor)
        cursor += step

    for metric in metrics:
        collected_at = _collected_at(metric)
        if collected_at is None or collected_at < start or collected_at > end:
            continue
        bucket = buckets[bucket_start(collected_at, granularity)]
        bucket.views += _number(metric.get("view_count"))
        bucket.engagement += engagement(metric)

    return [buckets[key] for key in sorted(buckets)]


@dataclass
class _Totals:
    views: float = 0
    likes: float = 0
    comments: float = 0
    shares: float = 0

    def add(self, metric: Mapping[str, Any]):
        self.views += _number(metric.get("view_count"))
        self.likes += _number(metric.get("like_count"))
        self.comments += _number(metric.get("comment_count"))
        self.shares += _number(metric.get("share_count"))

    @property
    def score(self) -> float:
        return self.views * 0.3 + self.likes * 2 + self.comments * 3 + self.shares * 4


def totals_by_post(metrics: Iterable[Mapping[str, Any]]) -> dict[str, _Totals]:
    totals: dict[str, _Totals] = defaultdict(_Totals)
    for metric in metrics:
        post_id = metric.get("post_id")
        if post_id:
            totals[post_id].add(metric)
    return totals


class RankedExperiment(BaseModel):
    experiment_id: str
    product_name: str | None = None
    platform: str
    performance_score: float


def rank_experiments(
    posts: Iterable[Mapping[str, Any]],
    metrics: Iterable[Mapping[str, Any]],
    product_names: Mapping[str, str | None] | None = None,
    top: int = TOP_EXPERIMENTS,
) -> List[RankedExperiment]:
    """
    Average post score per experiment, best first.

    Args:
        posts: Published posts (``id``, ``experiment_id``, ``platform``)
        metrics: Performance rows keyed by ``post_id``
        product_names: Product name per experiment id
        top: Number of experiments returned
    """
    by_post = totals_by_post(metrics)
    if not by_post:
        return []

    by_experiment: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for post in posts:
        if post.get("experiment_id"):
            by_experiment[post["experiment_id"]].append(post)

    ranked = []
    for experiment_id, experiment_posts in by_experiment.items():
        scores = [(by_post.get(p["id"], _Totals()).score, p.get("platform") or "") for p in experiment_posts]
        best_score, best_platform = scores[0]
        for score, platform in scores[1:]:
            if score > best_score:
                best_score, best_platform = score, platform
        ranked.append(RankedExperiment(
            experiment_id=experiment_id,
            product_name=(product_names or {}).get(experiment_id),
            platform=best_platform,
            performance_score=sum(score for score, _ in scores) / len(scores),
        ))

    ranked.sort(key=lambda r: r.performance_score, reverse=True)
    return ranked[:top]


class TopPost(BaseModel):
    post_id: str
    experiment_id: str
    platform: str
    score: float


class PerformanceSummary(BaseModel):
    total_views: float = 0
    total_engagement: float = 0
    avg_watch_time: float = 0
    top_performing_post: TopPost | None = None


def performance_summary(
    metrics: Iterable[Mapping[str, Any]], posts: Iterable[Mapping[str, Any]]
) -> PerformanceSummary:
    metrics = list(metrics)
    if not metrics:
        return PerformanceSummary()

    posts_by_id = {post["id"]: post for post in posts}
    top_post = None
    for post_id, totals in totals_by_post(metrics).items():
        post = posts_by_id.get(post_id)
        if not post or not post.get("experiment_id"):
            continue
        if top_post is None or totals.score > top_post.score:
            top_post = TopPost(
                post_id=post_id,
                experiment_id=post["experiment_id"],
                platform=post.get("platform") or "",
                score=totals.score,
            )

    return PerformanceSummary(
        total_views=sum(_number(m.get("view_count")) for m in metrics),
        total_engagement=sum(engagement(m) for m in metrics),
        avg_watch_time=sum(_number(m.get("watch_time_ms")) for m in metrics) / len(metrics),
        top_performing_post=top_post,
    )


def average_score(metrics: Iterable[Mapping[str, Any]]) -> float:
    scores = [performance_score(m) for m in metrics]
    return sum(scores) / len(scores) if scores else 0


def system_health(critical_events: int, workflow_failures: bool) -> SystemHealth:
    """``down`` at 5+ critical events, ``degraded`` on any critical event or workflow failure."""
    critical_events = max(0, int(critical_events or 0))
    if critical_events >= CRITICAL_EVENTS_DOWN:
        return "down"
    if critical_events > 0 or workflow_failures:
        return "degraded"
    return "healthy"


def has_workflow_failures(events: Iterable[StoredEvent]) -> bool:
    return any(
        "workflow" in e.event_type.lower() and "error" in e.event_type.lower()
        for e in events
    )


def active_workflows(events: Iterable[StoredEvent]) -> int:
    """Workflow ids with a ``workflow.start`` and no ``workflow.end``."""
    started, ended = set(), set()
    for event in events:
        if not event.workflow_id:
            continue
        event_type = event.event_type.lower()
        if event_type == "workflow.start":
            started.add(event.workflow_id)
        elif event_type == "workflow.end":
            ended.add(event.workflow_id)
    return len(started - ended)
