from __future__ import annotations

import zipfile
from io import BytesIO

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conveymed_analytics import server
from conveymed_analytics.config import ExportConfig
from conveymed_analytics.exporter import ExportController, ExportState


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def wired(monkeypatch, backend, tmp_path):
    monkeypatch.setattr(server, "backend", backend)
    monkeypatch.setattr(server, "exporter", ExportController(ExportConfig(output_dir=str(tmp_path))))
    return backend


@pytest.mark.asyncio
async def test_health_without_backend(client, monkeypatch):
    monkeypatch.setattr(server, "backend", None)

    resp = await client.get("/health")
    assert resp.json() == {"status": "ok", "backend": "missing"}

    resp = await client.post("/dashboard", json={"timeframe": "all"})
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_timeframes(client):
    resp = await client.get("/timeframes")
    assert [item["key"] for item in resp.json()] == ["30", "60", "90", "all", "custom"]


@pytest.mark.asyncio
async def test_dashboard_all_time(client, wired):
    resp = await client.post("/dashboard", json={"timeframe": "all", "sections": ["userActivity", "aiUsage"]})

    assert resp.status_code == 200
    body = resp.json()
    assert body["source"] == "database"
    sections = {section["id"]: section for section in body["data"]["sections"]}
    assert set(sections) == {"userActivity", "aiUsage"}
    assert sections["userActivity"]["data"]["totalSessions"] == 4
    assert sections["aiUsage"]["data"]["topUsers"][0]["name"] == "Bob Jones"


@pytest.mark.asyncio
async def test_dashboard_scoped_to_organization(client, wired):
    resp = await client.post(
        "/dashboard", json={"timeframe": "all", "organization_id": "org-s", "sections": ["userActivity"]}
    )

    activity = resp.json()["data"]["sections"][0]["data"]
    assert activity["totalUsers"] == 2
    assert activity["activeUsers"] == 1


@pytest.mark.asyncio
async def test_request_validation(client, wired):
    resp = await client.post("/dashboard", json={"sections": ["nope"]})
    assert resp.status_code == 422

    resp = await client.post(
        "/dashboard", json={"timeframe": "custom", "start": "2025-03-10T00:00:00", "end": "2025-03-01T00:00:00"}
    )
    assert resp.status_code == 422

    resp = await client.post("/dashboard", json={"timeframe": "custom"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_single_section(client, wired):
    resp = await client.post("/sections/chatActivity", json={"timeframe": "all"})
    assert resp.status_code == 200
    assert resp.json()["data"]["data"]["totalMessages"] == 3

    resp = await client.post("/sections/unknown", json={"timeframe": "all"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_section_backend_failure_is_reported(client, wired):
    wired.fail_tables["messages"] = "permission denied for table messages"

    resp = await client.post("/sections/chatActivity", json={"timeframe": "all"})

    section = resp.json()["data"]
    assert section["error"] == "permission denied for table messages"
    assert section["data"] is None


@pytest.mark.asyncio
async def test_backend_error_maps_to_bad_gateway(client, wired):
    wired.fail_tables["organizations"] = "connection refused"

    resp = await client.get("/organizations")

    assert resp.status_code == 502
    assert resp.json() == {"detail": "connection refused"}


@pytest.mark.asyncio
async def test_users_and_user_report(client, wired):
    resp = await client.get("/users", params={"organization_id": "org-n"})
    assert [user["id"] for user in resp.json()["users"]] == ["u1", "u2"]

    resp = await client.post("/users/u1/report", json={"timeframe": "all"})
    assert resp.status_code == 200
    assert resp.json()["data"]["total_sessions"] == 2

    resp = await client.post("/users/ghost/report", json={"timeframe": "all"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_export_zip(client, wired):
    resp = await client.post(
        "/export",
        json={"timeframe": "all", "format": "zip", "sections": ["userActivity"], "filename": "q1"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/zip"
    assert "q1_export_" in resp.headers["content-disposition"]
    names = zipfile.ZipFile(BytesIO(resp.content)).namelist()
    assert any(name.startswith("user-activity_") for name in names)
    assert any(name.startswith("user-report_") for name in names)


@pytest.mark.asyncio
async def test_export_while_busy(client, wired):
    server.exporter.state = ExportState.EXPORTING

    resp = await client.post("/export", json={"timeframe": "all", "format": "csv"})

    assert resp.status_code == 409
