"""Tests for the health, info and metrics endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Liveness answers without touching the database."""
    response = await test_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "umrah-booking-core"
    assert data["environment"] == "test"


@pytest.mark.asyncio
async def test_readiness_check(test_client):
    """Readiness reports the database check."""
    response = await test_client.get("/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": "ok"}


@pytest.mark.asyncio
async def test_health_ping(test_client):
    """The RPC ping includes database reachability."""
    response = await test_client.post("/v1/health/ping")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"] == "ok"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_service_info(test_client):
    """Service information lists the enabled features."""
    response = await test_client.get("/info")

    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "sqlite"
    assert data["features"]["idempotency"] is True
    assert data["features"]["problem_details"] is True


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Prometheus metrics are exposed in the text format."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in response.text
    assert "departure_seats_reserved_total" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    """A caller supplied request ID comes back on the response."""
    response = await test_client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


@pytest.mark.asyncio
async def test_request_id_is_generated(test_client):
    response = await test_client.get("/health")

    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_trace_context_is_continued(test_client):
    """An incoming traceparent keeps its trace ID."""
    trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"
    traceparent = f"00-{trace_id}-00f067aa0ba902b7-01"

    response = await test_client.get("/health", headers={"traceparent": traceparent})

    assert response.headers["traceparent"].startswith(f"00-{trace_id}-")


@pytest.mark.asyncio
async def test_trace_context_is_started(test_client):
    response = await test_client.get("/health")

    parts = response.headers["traceparent"].split("-")
    assert len(parts) == 4
    assert len(parts[1]) == 32
