import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_root_healthz(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["version"] == "0.1.0"


@pytest.mark.asyncio
async def test_readiness_reports_database_and_audit_worker(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        health = await client.get("/api/v1/health/healthz")
        ready = await client.get("/api/v1/health/readyz")

    assert health.json() == {"status": "ok"}
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ready"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["reward_audit"]["status"] == "disabled"
