from fastapi import APIRouter, Depends, Request
from datetime import datetime
from typing import Literal
from .deps import AGENT_REGISTRY, get_agent, get_analytics, get_event_log
from .schemas import (
    AgentRunRequest,
    AgentRunResponse,
    EventDetailResponse,
    EventListResponse,
    StatusListResponse,
    WorkflowStartRequest,
    WorkflowStartResponse,
)
from ..auth.api_key import verify_api_key
from ..config import get_settings
from ..errors import NotFoundError
from ..event_models import EventCategory, EventCreate, Severity, StoredEvent, utcnow
from ..projections.metrics import Granularity
from ..projections.status import WORKFLOW_CATALOG, list_agent_statuses, list_workflow_statuses
from ..services.analytics import AnalyticsService, DashboardSummary, PerformanceReport, Period
from ..services.event_log import EventLog

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


def _request_correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


@router.post("/events", response_model=StoredEvent, status_code=201)
async def create_event(
    req: EventCreate,
    request: Request,
    event_log: EventLog = Depends(get_event_log),
):
    # Inject correlation_id from middleware if not provided
    if not req.correlation_id:
        req = req.model_copy(update={"correlation_id": _request_correlation_id(request)})
    return await event_log.append(req)


@router.get("/events", response_model=EventListResponse)
async def list_events(
    severity: Severity | None = None,
    agent_name: str | None = None,
    event_type: str | None = None,
    event_category: EventCategory | None = None,
    workflow_id: str | None = None,
    correlation_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
    ascending: bool = False,
    event_log: EventLog = Depends(get_event_log),
):
    page = await event_log.query(
        severity=severity,
        agent_name=agent_name,
        event_type=event_type,
        event_category=event_category,
        workflow_id=workflow_id,
        correlation_id=correlation_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
        limit=limit,
        offset=offset,
        ascending=ascending,
    )
    return EventListResponse(total=page.total, limit=limit, offset=offset, events=page.events)


@router.get("/events/{event_id}", response_model=EventDetailResponse)
async def get_event(event_id: str, event_log: EventLog = Depends(get_event_log)):
    event = await event_log.get(event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return EventDetailResponse(event=event, related=await event_log.related_events(event))


@router.get("/agents", response_model=StatusListResponse)
async def list_agents(event_log: EventLog = Depends(get_event_log)):
    rows = await list_agent_statuses(
        event_log, catalog=AGENT_REGISTRY, lookback=get_settings().STATUS_LOOKBACK_EVENTS
    )
    return StatusListResponse(items=rows)


@router.post("/agents/{name}/run", response_model=AgentRunResponse)
async def run_agent(name: str, body: AgentRunRequest, request: Request):
    agent = get_agent(name)
    agent_input = dict(body.input)
    if body.workflow_id:
        agent_input["workflow_id"] = body.workflow_id
    agent_input.setdefault("correlation_id", body.correlation_id or _request_correlation_id(request))

    started_at = utcnow()
    output = await agent.execute(agent_input)
    return AgentRunResponse(agent=name, started_at=started_at, finished_at=utcnow(), output=output)


@router.get("/workflows", response_model=StatusListResponse)
async def list_workflows(event_log: EventLog = Depends(get_event_log)):
    rows = await list_workflow_statuses(event_log, lookback=get_settings().STATUS_LOOKBACK_EVENTS)
    return StatusListResponse(items=rows)


@router.post("/workflows/{workflow_id}/start", response_model=WorkflowStartResponse, status_code=202)
async def start_workflow(
    workflow_id: str,
    request: Request,
    body: WorkflowStartRequest | None = None,
    event_log: EventLog = Depends(get_event_log),
):
    if workflow_id not in WORKFLOW_CATALOG:
        raise NotFoundError(f"Workflow {workflow_id} not found", details={"known": list(WORKFLOW_CATALOG)})
    body = body or WorkflowStartRequest()

    stored = await event_log.append({
        "event_type": "workflow.start",
        "agent_name": workflow_id,
        "workflow_id": workflow_id,
        "correlation_id": body.correlation_id or _request_correlation_id(request),
        "payload": {"workflow_id": workflow_id, "input": body.input},
    })
    return WorkflowStartResponse(workflow=workflow_id, event_id=stored.id, correlation_id=stored.correlation_id)


@router.get("/metrics/summary", response_model=DashboardSummary)
async def metrics_summary(
    period: Period = "today",
    analytics: AnalyticsService = Depends(get_analytics),
):
    return await analytics.summary(period)


@router.get("/metrics/performance", response_model=PerformanceReport)
async def metrics_performance(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    granularity: Granularity = "day",
    platform: Literal["all", "instagram", "tiktok", "youtube", "facebook", "linkedin", "x"] = "all",
    experiment_id: str | None = None,
    product_id: str | None = None,
    analytics: AnalyticsService = Depends(get_analytics),
):
    return await analytics.performance(
        start=start_date,
        end=end_date,
        granularity=granularity,
        platform=platform,
        experiment_id=experiment_id,
        product_id=product_id,
    )
