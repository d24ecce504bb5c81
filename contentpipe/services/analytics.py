"""Analytics queries: performance report and dashboard summary.

Everything is derived per call from the record store and the event log.
"""
import calendar
from datetime import datetime, timedelta
from typing import Any, List, Literal
from pydantic import BaseModel
import structlog
from ..event_models import EventFilters, StoredEvent, as_utc, utcnow
from ..projections import metrics as agg
from ..store.base import (
    EXPERIMENTS,
    PERFORMANCE_METRICS,
    PRODUCTS,
    PUBLISHED_POSTS,
    SCRIPTS,
    VIDEO_ASSETS,
    RecordFilter,
    RecordStore,
    eq,
    gte,
    in_,
    lte,
)
from .event_log import EventLog

log = structlog.get_logger()

Period = Literal["today", "week", "month"]

EVENT_PAGE_SIZE = 1000


class PerformanceReport(BaseModel):
    summary: agg.PerformanceSummary
    time_series: List[agg.MetricBucket]
    top_experiments: List[agg.RankedExperiment]
    platform: str = "all"


class PeriodCounts(BaseModel):
    current: int
    previous: int
    trend: agg.TrendDirection


class ScoreChange(BaseModel):
    current: float
    previous_period: float
    change_percent: float


class DashboardSummary(BaseModel):
    period: Period
    scripts_generated: PeriodCounts
    assets_rendered: PeriodCounts
    posts_published: PeriodCounts
    avg_performance_score: ScoreChange
    system_health: agg.SystemHealth
    active_workflows: int
    recent_errors_24h: int


def period_bounds(period: Period, now: datetime) -> tuple[datetime, datetime]:
    """Current period: start of today, of this week (Monday) or of this month, up to ``now``."""
    now = as_utc(now)
    if period == "today":
        return agg.bucket_start(now, "day"), now
    if period == "week":
        return agg.bucket_start(now, "week"), now
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0), now


def previous_period_bounds(period: Period, now: datetime) -> tuple[datetime, datetime]:
    """The same span one day, week or month earlier."""
    start, end = period_bounds(period, now)
    if period == "month":
        year, month = (start.year - 1, 12) if start.month == 1 else (start.year, start.month - 1)
        day = min(end.day, calendar.monthrange(year, month)[1])
        return start.replace(year=year, month=month), end.replace(year=year, month=month, day=day)
    shift = timedelta(days=1) if period == "today" else timedelta(weeks=1)
    return start - shift, end - shift


class AnalyticsService:
    def __init__(self, records: RecordStore, event_log: EventLog):
        self.records = records
        self.event_log = event_log

    async def _events_between(self, start: datetime, end: datetime, **filters: Any) -> List[StoredEvent]:
        events: List[StoredEvent] = []
        offset = 0
        while True:
            page = await self.event_log.query(EventFilters(
                start_date=start, end_date=end, limit=EVENT_PAGE_SIZE, offset=offset, **filters
            ))
            events += page.events
            offset += len(page.events)
            if not page.events or offset >= page.total:
                return events

    async def _count_between(self, collection: str, field: str, start: datetime, end: datetime) -> int:
        rows = await self.records.select(collection, filters=[gte(field, start), lte(field, end)])
        return len(rows)

    async def performance(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        granularity: agg.Granularity = "day",
        platform: str = "all",
        experiment_id: str | None = None,
        product_id: str | None = None,
    ) -> PerformanceReport:
        """Totals, time series and top experiments for the matching posts."""
        post_filters: list[RecordFilter] = []
        if platform and platform != "all":
            post_filters.append(eq("platform", platform))
        if experiment_id:
            post_filters.append(eq("experiment_id", experiment_id))
        if product_id:
            experiments = await self.records.select(EXPERIMENTS, filters=[eq("product_id", product_id)])
            post_filters.append(in_("experiment_id", [e["id"] for e in experiments]))
        posts = await self.records.select(PUBLISHED_POSTS, filters=post_filters)

        metric_filters = [in_("post_id", [p["id"] for p in posts])]
        if start is not None:
            metric_filters.append(gte("collected_at", as_utc(start)))
        if end is not None:
            metric_filters.append(lte("collected_at", as_utc(end)))
        metrics = await self.records.select(PERFORMANCE_METRICS, filters=metric_filters) if posts else []

        top_experiments = []
        if metrics:
            top_experiments = agg.rank_experiments(posts, metrics, await self._product_names(posts))

        return PerformanceReport(
            summary=agg.performance_summary(metrics, posts),
            time_series=agg.time_buckets(metrics, granularity, start, end),
            top_experiments=top_experiments,
            platform=platform or "all",
        )

    async def _product_names(self, posts: List[dict[str, Any]]) -> dict[str, str | None]:
        experiment_ids = sorted({p["experiment_id"] for p in posts if p.get("experiment_id")})
        experiments = await self.records.select(EXPERIMENTS, filters=[in_("id", experiment_ids)])
        product_ids = sorted({e["product_id"] for e in experiments if e.get("product_id")})
        products = await self.records.select(PRODUCTS, filters=[in_("id", product_ids)])
        names = {p["id"]: p.get("name") for p in products}
        return {e["id"]: names.get(e.get("product_id")) for e in experiments}

    async def summary(self, period: Period = "today", now: datetime | None = None) -> DashboardSummary:
        """Dashboard counts with trends, score change, health and workflow activity."""
        now = as_utc(now or utcnow())
        current = period_bounds(period, now)
        previous = previous_period_bounds(period, now)

        async def counts(collection: str, field: str) -> PeriodCounts:
            cur = await self._count_between(collection, field, *current)
            prev = await self._count_between(collection, field, *previous)
            return PeriodCounts(current=cur, previous=prev, trend=agg.trend_direction(cur, prev))

        async def avg_score(bounds: tuple[datetime, datetime]) -> float:
            rows = await self.records.select(
                PERFORMANCE_METRICS, filters=[gte("collected_at", bounds[0]), lte("collected_at", bounds[1])]
            )
            return agg.average_score(rows)

        current_score = await avg_score(current)
        previous_score = await avg_score(previous)

        hour_ago, day_ago = now - timedelta(hours=1), now - timedelta(days=1)
        critical_last_hour = await self.event_log.query(EventFilters(
            start_date=hour_ago, end_date=now, severity="critical", limit=1
        ))
        day_events = await self._events_between(day_ago, now)
        workflow_day = [e for e in day_events if "workflow" in e.event_type.lower()]
        workflow_hour = [e for e in workflow_day if e.created_at >= hour_ago]
        errors_24h = sum(1 for e in day_events if e.severity in ("error", "critical"))

        summary = DashboardSummary(
            period=period,
            scripts_generated=await counts(SCRIPTS, "created_at"),
            assets_rendered=await counts(VIDEO_ASSETS, "created_at"),
            posts_published=await counts(PUBLISHED_POSTS, "posted_at"),
            avg_performance_score=ScoreChange(
                current=current_score,
                previous_period=previous_score,
                change_percent=agg.percent_change(current_score, previous_score),
            ),
            system_health=agg.system_health(
                critical_last_hour.total, agg.has_workflow_failures(workflow_hour)
            ),
            active_workflows=agg.active_workflows(workflow_day),
            recent_errors_24h=errors_24h,
        )
        log.debug("analytics.summary", period=period, health=summary.system_health)
        return summary
