import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from tenacity import wait_none

from main import app
from services.step_engine import definitions
from workbook.db.session import get_session_factory
from workbook.dependencies import get_identity_provider, get_progress_repository
from workbook.routers.progress import progress_events
from workbook.services.identity import SqlIdentityProvider
from workbook.services.progress_store import InMemoryProgressRepository, ProgressStoreError, SqlProgressRepository

API = "/api/v1"


def test_empty_progress(client, sponsee_headers):
    response = client.get(f"{API}/progress", headers=sponsee_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"currentStage": 1, "completedCount": 0, "totalDays": 0, "currentStageDays": 0}
    assert body["encouragement"] in definitions.STEP_ENCOURAGEMENTS[1]
    assert [row["status"] for row in body["steps"][:2]] == ["current", "locked"]
    assert body["steps"][0]["accessible"] is True
    assert body["steps"][1]["accessible"] is False


def test_progress_after_assignment(client, sponsee_headers, now):
    client.post(f"{API}/steps/1/unlock", json={"password": "honest"}, headers=sponsee_headers)
    started = (now - timedelta(days=3, hours=2)).isoformat()
    client.put(f"{API}/steps/1/assignment", json={"assignmentDate": started}, headers=sponsee_headers)

    summary = client.get(f"{API}/progress", headers=sponsee_headers).json()["summary"]
    assert summary == {"currentStage": 1, "completedCount": 0, "totalDays": 4, "currentStageDays": 4}


def test_sponsor_can_open_every_step(client, sponsor_headers):
    rows = client.get(f"{API}/progress", headers=sponsor_headers).json()["steps"]
    assert all(row["accessible"] for row in rows)


def test_records_endpoint(client, sponsee_headers):
    client.post(f"{API}/steps/3/unlock", json={"password": "faith"}, headers=sponsee_headers)
    records = client.get(f"{API}/progress/records", headers=sponsee_headers).json()["records"]
    assert [r["stepNumber"] for r in records] == [3]
    assert records[0]["id"] == "sponsee-1_step3"


def test_store_outage_serves_empty_progress(client, sponsee_headers):
    broken = MagicMock()
    broken.list_all = AsyncMock(side_effect=ProgressStoreError("down"))
    app.dependency_overrides[get_progress_repository] = lambda: broken
    response = client.get(f"{API}/progress", headers=sponsee_headers)
    assert response.status_code == 200
    assert response.json()["summary"]["currentStage"] == 1


@pytest.mark.asyncio
async def test_event_stream_sends_snapshot_then_updates():
    repo = InMemoryProgressRepository()
    await repo.set_field("u1", 2, "believe", "trust")
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=False)

    events = progress_events(request, repo, "u1", keepalive_seconds=5)
    snapshot = await events.__anext__()
    assert snapshot.startswith("event: progress\n")
    assert [r["stepNumber"] for r in json.loads(snapshot.split("data: ", 1)[1])] == [2]

    await repo.set_field("u1", 5, "k", "v")
    update = await asyncio.wait_for(events.__anext__(), timeout=1)
    assert [r["stepNumber"] for r in json.loads(update.split("data: ", 1)[1])] == [2, 5]

    await events.aclose()
    assert "u1" not in repo._subscribers


@pytest.mark.asyncio
async def test_event_stream_keepalive_and_disconnect():
    repo = InMemoryProgressRepository()
    request = MagicMock()
    request.is_disconnected = AsyncMock(side_effect=[False, True])

    events = progress_events(request, repo, "u1", keepalive_seconds=0.01)
    received = [event async for event in events]
    assert received[1] == ": keepalive\n\n"
    assert len(received) == 2
    assert "u1" not in repo._subscribers


@pytest.fixture
def unreachable_sql_client(client, tmp_path, monkeypatch):
    """The client wired to SQL stores whose database file cannot be opened."""
    for method in ("_get", "_list_all", "_merge_fields_once", "_write_dates_once"):
        monkeypatch.setattr(getattr(SqlProgressRepository, method).retry, "wait", wait_none())
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'workbook.db'}")
    factory = get_session_factory(engine)
    app.dependency_overrides[get_progress_repository] = lambda: SqlProgressRepository(factory)
    app.dependency_overrides[get_identity_provider] = lambda: SqlIdentityProvider(factory)
    return client


def test_unreachable_database_degrades_reads(unreachable_sql_client, sponsee_headers):
    response = unreachable_sql_client.get(f"{API}/progress", headers=sponsee_headers)
    assert response.status_code == 200
    assert response.json()["summary"] == {"currentStage": 1, "completedCount": 0, "totalDays": 0, "currentStageDays": 0}

    profile = unreachable_sql_client.get(f"{API}/account/me", headers=sponsee_headers)
    assert profile.status_code == 200
    assert profile.json()["role"] == "sponsee"


def test_unreachable_database_fails_writes_as_save_failed(unreachable_sql_client, sponsee_headers):
    response = unreachable_sql_client.put(f"{API}/steps/1/fields/admit", json={"value": "x"}, headers=sponsee_headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "SAVE_FAILED"
