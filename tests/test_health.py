"""
Tests for health check endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock
from contentpipe.main import app
from contentpipe.health import HealthChecker

client = TestClient(app)


def test_health_liveness():
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "contentpipe"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness():
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "contentpipe"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data
    assert set(data["checks"]) == {"event_store", "disk_space", "memory"}
    assert data["checks"]["event_store"]["backend"] == "memory"
    assert data["status"] in ("ready", "not_ready")


def test_metrics_endpoint():
    """Test Prometheus metrics endpoint."""
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "contentpipe_events_appended_total" in content
    assert "contentpipe_agent_runs_total" in content


def test_correlation_id_in_response():
    """Test that correlation ID is added to response headers."""
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation():
    """Test that provided correlation ID is propagated."""
    correlation_id = "test-correlation-id-123"
    r = client.get("/health", headers={"x-correlation-id": correlation_id})
    assert r.headers["x-correlation-id"] == correlation_id


@pytest.mark.asyncio
async def test_readiness_not_ready_when_event_store_down():
    event_log = AsyncMock()
    event_log.health_check.return_value = False
    event_log.backend = "redis"
    checker = HealthChecker(event_log)

    result = await checker.readiness()

    assert result["status"] == "not_ready"
    assert result["checks"]["event_store"] == {
        "status": "error",
        "backend": "redis",
        "latency_ms": result["checks"]["event_store"]["latency_ms"],
    }


@pytest.mark.asyncio
async def test_readiness_reports_event_store_exception():
    event_log = AsyncMock()
    event_log.health_check.side_effect = ConnectionError("redis unreachable")
    event_log.backend = "redis"
    checker = HealthChecker(event_log)

    result = await checker.readiness()

    assert result["status"] == "not_ready"
    assert result["checks"]["event_store"]["error"] == "redis unreachable"
