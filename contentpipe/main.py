"""
contentpipe - Content production pipeline service.

Features:
- Agent runs (script, render, publish) with lifecycle events
- Event log queries and threaded event detail
- Agent and workflow status projections
- Performance and dashboard metrics
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .errors import PipelineError
from .logging import setup_logging, get_logger, SERVICE_NAME
from .api.deps import get_event_log
from .api.router import router
from .middleware.correlation import CorrelationMiddleware
from .middleware.error_handler import (
    ErrorHandlerMiddleware,
    pipeline_error_handler,
    request_validation_handler,
)
from .middleware.metrics import MetricsMiddleware
from .metrics import Metrics, set_metrics
from .health import HealthChecker

VERSION = "0.1.0"

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON)
logger = get_logger()

# Initialize metrics; event log and agents record into the same registry
metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
set_metrics(metrics)

health_checker = HealthChecker(get_event_log(), service_name=SERVICE_NAME, version=VERSION)

app = FastAPI(
    title="contentpipe",
    version=VERSION,
    description="Content production pipeline with an append-only event log",
)

# Last added runs first: correlation ID, then metrics, then error shaping
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationMiddleware)

app.add_exception_handler(PipelineError, pipeline_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - event store, disk and memory.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        event_store=get_event_log().backend,
        storage_backend=settings.STORAGE_BACKEND,
        mock_llm=settings.use_mock_llm,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("service_stopping")
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contentpipe.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
