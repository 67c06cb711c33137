"""
System smoke test: full API flow in-process with SQLite.
Verifies health, auth, ingestion, the Time Machine views, report export,
view-state snapshots and the live replay socket.
Uses a temp file DB so all connections share the same database.
"""

import asyncio
import os
import tempfile
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketDisconnect
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Use file-based SQLite so all connections share the same DB (in-memory is per-connection)
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
# Force config reload so app uses test DB
from teamhub.config import get_settings
get_settings.cache_clear()

from teamhub.database import get_db
from teamhub.kernel.identity.jwt import create_access_token
from teamhub.kernel.models import Base, Member
from teamhub.main import app

API = "/api/v1"

# NullPool: the websocket tests drive the app from their own event loop
TEST_ENGINE = create_async_engine(
    f"sqlite+aiosqlite:///{TEST_DB_PATH}",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=NullPool,
)
TEST_SESSION_MAKER = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TEST_SESSION_MAKER() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_member(name: str = "Smoke Member") -> dict:
    """Insert a member and return bearer headers for it."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    member_id = uuid.uuid4()
    async with TEST_SESSION_MAKER() as session:
        session.add(Member(id=member_id, email=f"{member_id.hex[:8]}@example.com", full_name=name))
        await session.commit()

    token = create_access_token(member_id)
    return {"id": str(member_id), "token": token, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture(scope="module", autouse=True)
def _cleanup_db_file():
    yield
    try:
        if os.path.exists(TEST_DB_PATH):
            os.unlink(TEST_DB_PATH)
    except OSError:
        pass


@pytest_asyncio.fixture
async def client():
    """Async client bound to the test DB."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def member() -> dict:
    return await create_member()


async def post_action(client: AsyncClient, headers: dict, action: str, name: str, **body) -> str:
    r = await client.post(f"{API}/events/actions/{action}", json={"name": name, **body}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["event_id"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Health endpoint responds."""
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert "version" in data
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_reads_require_auth(client: AsyncClient):
    for path in ("/events", "/timemachine/overview", "/timemachine/reports", "/view-state?route=/a&widget_id=b"):
        r = await client.get(f"{API}{path}")
        assert r.status_code == 401, path

    r = await client.get(f"{API}/events", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_ingestion(client: AsyncClient, member: dict):
    """Authenticated appends succeed; anonymous ones are soft failures."""
    headers = member["headers"]

    r = await client.post(
        f"{API}/events",
        json={
            "event_type": "creation",
            "event_category": "goal",
            "title": "Goal created: Win regional",
            "metadata": {"goal_id": "g-1"},
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["success"] is True
    goal_id = r.json()["event_id"]

    r = await client.post(
        f"{API}/events",
        json={"event_type": "creation", "event_category": "goal", "title": "Ghost"},
    )
    assert r.status_code == 200
    assert r.json() == {"success": False, "event_id": None, "reason": "not_authenticated"}

    r = await client.post(
        f"{API}/events",
        json={"event_type": "creation", "event_category": "goal", "title": "  "},
        headers=headers,
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "Validation error"

    # Per-action endpoint
    await post_action(client, headers, "task_completed", "Build base")
    r = await client.post(f"{API}/events/actions/dance", json={"name": "x"}, headers=headers)
    assert r.status_code == 404
    r = await client.post(f"{API}/events/actions/upload", json={"name": "photo.jpg"}, headers=headers)
    assert r.status_code == 422

    # Read back
    r = await client.get(f"{API}/events", params={"categories": ["goal"]}, headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert all(item["event_category"] == "goal" for item in data["items"])
    assert data["total"] == len(data["items"])

    r = await client.get(f"{API}/events/{goal_id}", headers=headers)
    assert r.status_code == 200
    detail = r.json()
    assert detail["event"]["title"] == "Goal created: Win regional"
    assert detail["event"]["user"]["full_name"] == "Smoke Member"
    assert detail["event"]["metadata"] == {"goal_id": "g-1"}
    assert detail["related_event"] is None

    r = await client.get(f"{API}/events/{uuid.uuid4()}", headers=headers)
    assert r.status_code == 404

    r = await client.get(f"{API}/events/count", params={"user_id": member["id"]}, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"count": 2}
    r = await client.get(
        f"{API}/events/count", params={"user_id": member["id"], "category": "goal"}, headers=headers
    )
    assert r.json() == {"count": 1}


@pytest.mark.asyncio
async def test_related_events(client: AsyncClient, member: dict):
    """Related links resolve when present and read as null when dangling."""
    headers = member["headers"]

    prototype_id = await post_action(client, headers, "prototype", "Gripper v1")
    first_id = await post_action(client, headers, "iteration", "Softer pads", related_event_id=prototype_id)
    second_id = await post_action(client, headers, "iteration", "Longer arm", related_event_id=first_id)
    dangling_id = await post_action(client, headers, "iteration", "Orphan", related_event_id=str(uuid.uuid4()))

    r = await client.get(f"{API}/events/{second_id}", headers=headers)
    detail = r.json()
    assert detail["related_event"]["id"] == first_id
    assert [e["id"] for e in detail["lineage"]] == [first_id, prototype_id]

    r = await client.get(f"{API}/events/{dangling_id}", headers=headers)
    assert r.status_code == 200
    detail = r.json()
    assert detail["event"]["related_event_id"] is not None
    assert detail["related_event"] is None
    assert detail["lineage"] == []


@pytest.mark.asyncio
async def test_time_machine_views(client: AsyncClient, member: dict):
    """Overview, member activity, evolution and calendar reflect new events."""
    headers = member["headers"]
    await post_action(client, headers, "test", "Arm lift failed")
    await post_action(client, headers, "feedback", "Judges")

    r = await client.get(f"{API}/timemachine/overview", headers=headers)
    assert r.status_code == 200
    overview = r.json()
    assert overview["total_events"] >= 2
    assert len(overview["hourly"]["buckets"]) == 24
    assert len(overview["weekday"]["buckets"]) == 7
    assert overview["hourly"]["max_count"] >= 1
    assert "Feedback: Judges" in [e["title"] for e in overview["recent_events"]]

    r = await client.get(
        f"{API}/timemachine/overview", params={"categories": ["feedback"]}, headers=headers
    )
    assert r.json()["categories"] == ["feedback"]

    r = await client.get(f"{API}/timemachine/overview", params={"tz": "Mars/Olympus"}, headers=headers)
    assert r.status_code == 422

    r = await client.get(f"{API}/timemachine/members", headers=headers)
    assert r.status_code == 200
    rollups = {m["member_id"]: m for m in r.json()["members"]}
    assert rollups[member["id"]]["tests_run"] == 1
    assert rollups[member["id"]]["feedbacks_given"] == 1
    assert rollups[member["id"]]["full_name"] == "Smoke Member"

    r = await client.get(f"{API}/timemachine/evolution", headers=headers)
    assert r.status_code == 200
    evolution = r.json()
    assert evolution["stats"]["tests"] >= 1
    assert evolution["stats"]["feedbacks"] >= 1
    assert isinstance(evolution["steps"], list)

    today = datetime.now(timezone.utc).date()
    r = await client.get(f"{API}/timemachine/calendar", headers=headers)
    assert r.status_code == 200
    calendar = r.json()
    assert (calendar["year"], calendar["month"]) == (today.year, today.month)
    assert calendar["total_events"] >= 2
    assert all(len(week) == 7 for week in calendar["weeks"])

    r = await client.get(
        f"{API}/timemachine/calendar/day", params={"day": today.isoformat()}, headers=headers
    )
    assert r.status_code == 200
    entries = r.json()["entries"]
    titles = [e["event"]["title"] for e in entries]
    assert all(len(e["time"]) == 5 for e in entries)
    assert "Test run: Arm lift failed" in titles
    assert "Feedback: Judges" in titles

    r = await client.get(f"{API}/timemachine/calendar", params={"month": 13}, headers=headers)
    assert r.status_code == 422
    for year in (1, 9999):
        r = await client.get(
            f"{API}/timemachine/calendar", params={"year": year, "month": 1}, headers=headers
        )
        assert r.status_code == 422, year
    r = await client.get(f"{API}/timemachine/calendar", params={"year": 9998, "month": 12}, headers=headers)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_reports_and_export(client: AsyncClient, member: dict):
    headers = member["headers"]
    await post_action(client, headers, "goal_completed", "Win regional")

    r = await client.get(f"{API}/timemachine/reports", headers=headers)
    assert r.status_code == 200
    kinds = [report["kind"] for report in r.json()["reports"]]
    assert kinds == ["iteration", "development", "participation", "timeline"]

    r = await client.get(f"{API}/timemachine/reports/participation/export", headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    disposition = r.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="member-participation-')
    assert disposition.endswith('.txt"')
    assert r.text.startswith("Member Participation\n")
    assert "Smoke Member:" in r.text

    r = await client.get(f"{API}/timemachine/reports/weekly/export", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_replay_frame(client: AsyncClient, member: dict):
    headers = member["headers"]
    await post_action(client, headers, "meeting", "Kickoff")
    await post_action(client, headers, "decision", "Use tank drive")

    r = await client.get(f"{API}/timemachine/replay/frame", headers=headers)
    assert r.status_code == 200
    frame = r.json()
    assert frame["state"] == "stopped"
    assert frame["cursor"] == 0
    assert frame["history"] == []

    r = await client.get(
        f"{API}/timemachine/replay/frame",
        params={"cursor": 10_000, "speed": 2, "history_limit": 1},
        headers=headers,
    )
    frame = r.json()
    assert frame["state"] == "paused"
    assert frame["cursor"] == frame["total_events"] - 1
    assert frame["speed"] == 2
    assert frame["interval_seconds"] == 0.5
    assert len(frame["history"]) == 1
    assert frame["history"][0]["id"] == frame["current_event"]["id"]

    r = await client.get(f"{API}/timemachine/replay/frame", params={"speed": 0}, headers=headers)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_view_state(client: AsyncClient, member: dict):
    headers = member["headers"]
    params = {"route": "/timemachine", "widget_id": "tab"}

    r = await client.get(f"{API}/view-state", params=params, headers=headers)
    assert r.json()["value"] is None

    r = await client.put(f"{API}/view-state", params=params, json={"value": "replay"}, headers=headers)
    assert r.status_code == 200
    r = await client.get(f"{API}/view-state", params=params, headers=headers)
    assert r.json() == {"route": "/timemachine", "widget_id": "tab", "value": "replay"}

    # Snapshots are per member
    other = await create_member("Other Member")
    r = await client.get(f"{API}/view-state", params=params, headers=other["headers"])
    assert r.json()["value"] is None

    r = await client.delete(f"{API}/view-state", params=params, headers=headers)
    assert r.status_code == 204
    r = await client.get(f"{API}/view-state", params=params, headers=headers)
    assert r.json()["value"] is None

    modal = {"route": "/timemachine", "widget_id": "event-form"}
    await client.put(f"{API}/view-state", params=modal, json={"value": {"is_open": "maybe"}}, headers=headers)
    r = await client.get(f"{API}/view-state/modal", params=modal, headers=headers)
    assert r.status_code == 200
    assert r.json()["is_open"] is False

    # "::" joins route and widget in the storage key
    r = await client.put(
        f"{API}/view-state", params={"route": "/a::b", "widget_id": "tab"}, json={"value": 1}, headers=headers
    )
    assert r.status_code == 422


def test_replay_socket_rejects_missing_token():
    with TestClient(app) as tc:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with tc.websocket_connect(f"{API}/timemachine/replay/ws") as ws:
                ws.receive_json()
    assert exc_info.value.code == 4401


def test_replay_socket_commands():
    """Seek, speed and bad commands over the live replay socket."""
    member = asyncio.run(create_member("Socket Member"))
    with TestClient(app) as tc:
        with tc.websocket_connect(f"{API}/timemachine/replay/ws?token={member['token']}") as ws:
            initial = ws.receive_json()
            assert initial["type"] == "frame"
            assert initial["frame"]["state"] == "stopped"
            assert initial["frame"]["cursor"] == 0

            ws.send_json({"action": "speed", "value": 2})
            frame = ws.receive_json()["frame"]
            assert frame["speed"] == 2

            ws.send_json({"action": "fly"})
            error = ws.receive_json()
            assert error == {"type": "error", "detail": "Unknown action 'fly'"}

            ws.send_json({"action": "seek", "index": "3"})
            assert ws.receive_json()["type"] == "error"


def test_replay_socket_follows_new_events():
    """An append while the socket is open pushes a frame with the refetched log."""
    member = asyncio.run(create_member("Follower Member"))
    headers = {"Authorization": f"Bearer {member['token']}"}
    with TestClient(app) as tc:
        with tc.websocket_connect(f"{API}/timemachine/replay/ws?token={member['token']}") as ws:
            before = ws.receive_json()["frame"]["total_events"]

            r = tc.post(f"{API}/events/actions/meeting", json={"name": "Pit review"}, headers=headers)
            assert r.status_code == 201, r.text

            message = ws.receive_json()
            assert message["type"] == "frame"
            assert message["frame"]["total_events"] == before + 1
            assert message["frame"]["state"] == "stopped"
