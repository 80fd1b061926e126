"""
Tests for the league service: creation, listing, detail, updates,
and the end-to-end ranking scenario.
"""

from datetime import timedelta

import pytest

from friendleague.services import event_service, league_service
from friendleague.services.exceptions import BadRequestError, ForbiddenError, NotFoundError
from friendleague.utils.datetime_utils import utcnow


# ──────────────────────────────────────────────────────────────
# Create / read
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_league_enrols_owner(db_session, users):
    league = await league_service.create_league(
        db_session, users["alice"], "  Tuesday Darts  ", description="Weekly darts"
    )

    assert league["name"] == "Tuesday Darts"
    assert league["owner_id"] == users["alice"]
    assert league["owner"]["username"] == "alice"
    assert league["member_count"] == 1
    assert league["members"][0]["user_id"] == users["alice"]
    assert league["members"][0]["rank"] == 1
    assert league["members"][0]["total_points"] == 0
    assert league["is_admin"] is True
    assert league["is_member"] is True
    assert league["admins"] == []
    assert league["rules"] == []


@pytest.mark.asyncio
async def test_create_league_validates_name(db_session, users):
    with pytest.raises(BadRequestError):
        await league_service.create_league(db_session, users["alice"], "ab")
    with pytest.raises(BadRequestError):
        await league_service.create_league(db_session, users["alice"], "x" * 51)
    with pytest.raises(BadRequestError):
        await league_service.create_league(
            db_session, users["alice"], "Long Story", description="y" * 201
        )


@pytest.mark.asyncio
async def test_get_missing_league(db_session, users):
    with pytest.raises(NotFoundError):
        await league_service.get_league(db_session, 31337, users["alice"])


@pytest.mark.asyncio
async def test_list_leagues_visibility(db_session, users):
    public = await league_service.create_league(db_session, users["alice"], "Public League")
    private = await league_service.create_league(
        db_session, users["alice"], "Private League", is_private=True
    )
    await league_service.add_member(db_session, private["id"], users["alice"], users["bob"])

    alice_ids = [row["id"] for row in await league_service.list_leagues(db_session, users["alice"])]
    bob_ids = [row["id"] for row in await league_service.list_leagues(db_session, users["bob"])]
    carol_ids = [row["id"] for row in await league_service.list_leagues(db_session, users["carol"])]

    assert set(alice_ids) == {public["id"], private["id"]}
    assert set(bob_ids) == {public["id"], private["id"]}
    assert carol_ids == [public["id"]]

    counts = {row["id"]: row["member_count"] for row in await league_service.list_leagues(db_session, users["bob"])}
    assert counts[private["id"]] == 2


@pytest.mark.asyncio
async def test_private_league_detail_hidden(db_session, users):
    league = await league_service.create_league(
        db_session, users["alice"], "Private League", is_private=True
    )
    with pytest.raises(ForbiddenError):
        await league_service.get_league(db_session, league["id"], users["carol"])
    with pytest.raises(ForbiddenError):
        await league_service.get_leaderboard(db_session, league["id"], users["carol"])


# ──────────────────────────────────────────────────────────────
# Update
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_update_league_partial(db_session, users):
    league = await league_service.create_league(
        db_session, users["alice"], "Old Name", description="Keep me"
    )

    updated = await league_service.update_league(
        db_session, league["id"], users["alice"], {"name": "New Name"}
    )

    assert updated["name"] == "New Name"
    assert updated["description"] == "Keep me"


@pytest.mark.asyncio
async def test_update_league_by_delegated_admin(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Shared League")
    await league_service.join_league(db_session, league["id"], users["bob"])
    await league_service.grant_admin(db_session, league["id"], users["alice"], users["bob"])

    updated = await league_service.update_league(
        db_session, league["id"], users["bob"], {"description": "Run by bob too"}
    )
    assert updated["description"] == "Run by bob too"
    assert [a["user_id"] for a in updated["admins"]] == [users["bob"]]


@pytest.mark.asyncio
async def test_update_league_requires_admin(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Shared League")
    await league_service.join_league(db_session, league["id"], users["bob"])

    with pytest.raises(ForbiddenError):
        await league_service.update_league(
            db_session, league["id"], users["bob"], {"name": "Mine Now"}
        )


# ──────────────────────────────────────────────────────────────
# League events
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_league_events(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Event League")
    start = utcnow() + timedelta(days=3)
    later = await event_service.create_event(
        db_session, users["alice"], "Later Event", start + timedelta(days=1),
        start + timedelta(days=1, hours=2), league_id=league["id"],
    )
    sooner = await event_service.create_event(
        db_session, users["alice"], "Sooner Event", start, start + timedelta(hours=2),
        league_id=league["id"],
    )
    hidden = await event_service.create_event(
        db_session, users["alice"], "Hidden Event", start, start + timedelta(hours=1),
        league_id=league["id"], is_private=True,
    )
    await event_service.create_event(
        db_session, users["alice"], "Unlinked Event", start, start + timedelta(hours=1),
    )

    owner_view = await league_service.list_league_events(db_session, league["id"], users["alice"])
    outsider_view = await league_service.list_league_events(db_session, league["id"], users["bob"])

    assert {e["id"] for e in owner_view} == {later["id"], sooner["id"], hidden["id"]}
    assert [e["id"] for e in outsider_view] == [sooner["id"], later["id"]]


# ──────────────────────────────────────────────────────────────
# End-to-end ranking scenario
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_owner_and_two_joiners_scenario(db_session, users):
    """A owns, B and C join, A awards B 10 WINS points."""
    a, b, c = users["alice"], users["bob"], users["carol"]
    league = await league_service.create_league(db_session, a, "Scenario League")
    await league_service.join_league(db_session, league["id"], b)
    joined = await league_service.join_league(db_session, league["id"], c)

    assert [(m["user_id"], m["rank"]) for m in joined["members"]] == [(a, 1), (b, 2), (c, 3)]

    await league_service.assign_points(db_session, league["id"], a, b, 10, "WINS")

    board = await league_service.get_leaderboard(db_session, league["id"], c)
    assert [(row["user_id"], row["total_points"], row["rank"]) for row in board] == [
        (b, 10, 1),
        (a, 0, 2),
        (c, 0, 3),
    ]
