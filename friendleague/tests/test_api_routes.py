"""
HTTP-level tests for the league and event routes.

Requests go through the real routers, auth dependency and services against a
file-backed SQLite database; only the session dependency is overridden.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from friendleague.api.main import app
from friendleague.database.db import Base, get_db_session
from friendleague.database.models import User
from friendleague.services import auth_service
from friendleague.utils.datetime_utils import utcnow


# ============================================================================
# Fixtures and helpers
# ============================================================================


@pytest.fixture
def api(tmp_path):
    """TestClient wired to a fresh SQLite file, plus user ids by name."""
    db_path = tmp_path / "api.db"

    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    ids = {}
    with Session(sync_engine) as session:
        for name in ("alice", "bob", "carol", "dave"):
            user = User(username=name, email=f"{name}@example.com")
            session.add(user)
            session.flush()
            ids[name] = user.id
        session.commit()
    sync_engine.dispose()

    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    session_maker = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    yield TestClient(app), ids
    app.dependency_overrides.clear()


def auth(user_id):
    """Helper: bearer header for a user."""
    token = auth_service.create_access_token({"user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


def create_league(client, user_id, name="Friday Pool", **extra):
    response = client.post("/api/leagues", json={"name": name, **extra}, headers=auth(user_id))
    assert response.status_code == 200, response.text
    return response.json()


def create_event(client, user_id, title="Pub Quiz", **extra):
    start = utcnow() + timedelta(days=1)
    payload = {
        "title": title,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=2)).isoformat(),
        **extra,
    }
    response = client.post("/api/events", json=payload, headers=auth(user_id))
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# Health and auth
# ============================================================================


def test_health_check(api):
    client, _ = api
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_rejected(api):
    client, _ = api
    response = client.get("/api/leagues")
    assert response.status_code in (401, 403)


def test_invalid_token_rejected(api):
    client, _ = api
    response = client.get("/api/leagues", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid authentication token"


def test_token_for_unknown_user_rejected(api):
    client, _ = api
    response = client.get("/api/leagues", headers=auth(9999))
    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


# ============================================================================
# Leagues
# ============================================================================


def test_league_scenario_over_http(api):
    """Owner creates, two users join, owner awards points, leaderboard re-ranks."""
    client, ids = api
    league = create_league(client, ids["alice"])
    league_id = league["id"]

    assert client.post(f"/api/leagues/{league_id}/join", headers=auth(ids["bob"])).status_code == 200
    joined = client.post(f"/api/leagues/{league_id}/join", headers=auth(ids["carol"])).json()
    assert [m["rank"] for m in joined["members"]] == [1, 2, 3]

    response = client.post(
        f"/api/leagues/{league_id}/points",
        json={"user_id": ids["bob"], "points": 10, "category": "WINS"},
        headers=auth(ids["alice"]),
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["member"]["total_points"] == 10
    assert body["member"]["rank"] == 1
    assert body["points_added"] == 10

    board = client.get(f"/api/leagues/{league_id}/leaderboard", headers=auth(ids["carol"])).json()
    assert [(row["username"], row["total_points"], row["rank"]) for row in board] == [
        ("bob", 10, 1),
        ("alice", 0, 2),
        ("carol", 0, 3),
    ]


def test_create_league_validation_error(api):
    client, ids = api
    response = client.post("/api/leagues", json={"name": "ab"}, headers=auth(ids["alice"]))
    assert response.status_code == 422


def test_get_missing_league_returns_404(api):
    client, ids = api
    response = client.get("/api/leagues/4040", headers=auth(ids["alice"]))
    assert response.status_code == 404
    assert response.json()["detail"] == "League not found"


def test_private_league_join_flow(api):
    client, ids = api
    league = create_league(client, ids["alice"], name="Secret Club", is_private=True)
    code = league["invite_code"]

    assert client.get(f"/api/leagues/{league['id']}", headers=auth(ids["bob"])).status_code == 403
    wrong = client.post(
        f"/api/leagues/{league['id']}/join", json={"invite_code": "XXXXXXXX"}, headers=auth(ids["bob"])
    )
    assert wrong.status_code == 403
    assert wrong.json()["detail"] == "Invalid invite code"

    right = client.post(
        f"/api/leagues/{league['id']}/join", json={"invite_code": code}, headers=auth(ids["bob"])
    )
    assert right.status_code == 200
    assert right.json()["is_member"] is True


def test_join_twice_returns_409(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    client.post(f"/api/leagues/{league['id']}/join", headers=auth(ids["bob"]))

    response = client.post(f"/api/leagues/{league['id']}/join", headers=auth(ids["bob"]))
    assert response.status_code == 409


def test_points_by_non_admin_forbidden(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    client.post(f"/api/leagues/{league['id']}/join", headers=auth(ids["bob"]))

    response = client.post(
        f"/api/leagues/{league['id']}/points",
        json={"user_id": ids["bob"], "points": 100, "category": "BONUS"},
        headers=auth(ids["bob"]),
    )
    assert response.status_code == 403


def test_points_out_of_range_rejected(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    response = client.post(
        f"/api/leagues/{league['id']}/points",
        json={"user_id": ids["alice"], "points": 5000, "category": "BONUS"},
        headers=auth(ids["alice"]),
    )
    assert response.status_code == 422


def test_admin_grant_and_revoke(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    league_id = league["id"]
    client.post(f"/api/leagues/{league_id}/join", headers=auth(ids["bob"]))

    granted = client.post(f"/api/leagues/{league_id}/admins/{ids['bob']}", headers=auth(ids["alice"]))
    assert granted.status_code == 200
    assert granted.json()["granted_by"] == ids["alice"]

    again = client.post(f"/api/leagues/{league_id}/admins/{ids['bob']}", headers=auth(ids["alice"]))
    assert again.status_code == 409

    revoked = client.delete(f"/api/leagues/{league_id}/admins/{ids['bob']}", headers=auth(ids["alice"]))
    assert revoked.status_code == 200
    assert revoked.json() == {"success": True}


def test_sole_owner_cannot_leave(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    response = client.post(f"/api/leagues/{league['id']}/leave", headers=auth(ids["alice"]))
    assert response.status_code == 409


def test_member_add_and_remove(api):
    client, ids = api
    league = create_league(client, ids["alice"])

    added = client.post(
        f"/api/leagues/{league['id']}/members", json={"user_id": ids["dave"]}, headers=auth(ids["alice"])
    )
    assert added.status_code == 200
    assert added.json()["member_count"] == 2

    removed = client.delete(
        f"/api/leagues/{league['id']}/members/{ids['dave']}", headers=auth(ids["alice"])
    )
    assert removed.status_code == 200

    members = client.get(f"/api/leagues/{league['id']}/members", headers=auth(ids["alice"])).json()
    assert [m["username"] for m in members] == ["alice"]


def test_rule_create_and_update(api):
    client, ids = api
    league = create_league(client, ids["alice"])

    created = client.post(
        f"/api/leagues/{league['id']}/rules",
        json={"title": "Win a frame", "points": 3, "category": "WINS"},
        headers=auth(ids["alice"]),
    )
    assert created.status_code == 200, created.text
    rule_id = created.json()["id"]

    updated = client.put(
        f"/api/leagues/{league['id']}/rules/{rule_id}",
        json={"points": 4},
        headers=auth(ids["alice"]),
    )
    assert updated.status_code == 200
    assert updated.json()["points"] == 4
    assert updated.json()["title"] == "Win a frame"

    rules = client.get(f"/api/leagues/{league['id']}/rules", headers=auth(ids["bob"])).json()
    assert [r["id"] for r in rules] == [rule_id]


@patch("friendleague.services.league_service.list_leagues", new_callable=AsyncMock)
def test_unexpected_error_returns_500(mock_list, api):
    client, ids = api
    mock_list.side_effect = RuntimeError("boom")

    response = client.get("/api/leagues", headers=auth(ids["alice"]))
    assert response.status_code == 500
    assert response.json()["detail"] == "Error listing leagues"


# ============================================================================
# Events
# ============================================================================


def test_event_points_propagate_over_http(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    client.post(f"/api/leagues/{league['id']}/join", headers=auth(ids["bob"]))
    event = create_event(client, ids["alice"], league_id=league["id"], participant_ids=[ids["bob"]])
    assert event["league"]["id"] == league["id"]

    response = client.post(
        f"/api/events/{event['id']}/points",
        json={"user_id": ids["bob"], "points": 7, "category": "BONUS", "reason": "Hat trick"},
        headers=auth(ids["alice"]),
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["participant"]["total_points"] == 7
    assert body["propagated_to_league"] is True

    board = client.get(f"/api/leagues/{league['id']}/leaderboard", headers=auth(ids["alice"])).json()
    assert board[0]["username"] == "bob"
    assert board[0]["total_points"] == 7

    events = client.get(f"/api/leagues/{league['id']}/events", headers=auth(ids["bob"])).json()
    assert [e["id"] for e in events] == [event["id"]]


def test_event_end_before_start_rejected(api):
    client, ids = api
    start = utcnow() + timedelta(days=1)
    response = client.post(
        "/api/events",
        json={
            "title": "Backwards",
            "start_date": start.isoformat(),
            "end_date": (start - timedelta(hours=1)).isoformat(),
        },
        headers=auth(ids["alice"]),
    )
    assert response.status_code == 422


def test_event_in_foreign_league_forbidden(api):
    client, ids = api
    league = create_league(client, ids["alice"])
    start = utcnow() + timedelta(days=1)
    response = client.post(
        "/api/events",
        json={
            "title": "Gatecrash",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(hours=1)).isoformat(),
            "league_id": league["id"],
        },
        headers=auth(ids["bob"]),
    )
    assert response.status_code == 403


def test_full_event_returns_409(api):
    client, ids = api
    event = create_event(client, ids["alice"], max_participants=2, participant_ids=[ids["bob"]])

    response = client.post(f"/api/events/{event['id']}/join", headers=auth(ids["carol"]))
    assert response.status_code == 409
    assert response.json()["detail"] == "Event is full"


def test_event_owner_cannot_leave(api):
    client, ids = api
    event = create_event(client, ids["alice"])
    response = client.post(f"/api/events/{event['id']}/leave", headers=auth(ids["alice"]))
    assert response.status_code == 403


def test_invitation_flow(api):
    client, ids = api
    event = create_event(client, ids["alice"], is_private=True)

    created = client.post(
        f"/api/events/{event['id']}/invitations",
        json={"email": "carol@example.com", "expires_in_days": 3},
        headers=auth(ids["alice"]),
    )
    assert created.status_code == 200, created.text
    code = created.json()["code"]
    assert created.json()["status"] == "PENDING"

    used = client.post(
        f"/api/events/{event['id']}/invitations/use", json={"code": code}, headers=auth(ids["carol"])
    )
    assert used.status_code == 200
    assert used.json()["is_participant"] is True

    reused = client.post(
        f"/api/events/{event['id']}/invitations/use", json={"code": code}, headers=auth(ids["dave"])
    )
    assert reused.status_code == 409

    listed = client.get(f"/api/events/{event['id']}/invitations", headers=auth(ids["alice"]))
    assert listed.status_code == 200
    assert listed.json()[0]["status"] == "ACCEPTED"
    assert listed.json()[0]["accepted_by_user_id"] == ids["carol"]

    assert client.get(
        f"/api/events/{event['id']}/invitations", headers=auth(ids["carol"])
    ).status_code == 403


def test_unknown_invitation_returns_404(api):
    client, ids = api
    event = create_event(client, ids["alice"])
    response = client.post(
        f"/api/events/{event['id']}/invitations/use", json={"code": "NOPE1234"}, headers=auth(ids["bob"])
    )
    assert response.status_code == 404
