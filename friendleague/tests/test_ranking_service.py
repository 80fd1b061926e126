"""
Tests for the ranking engine: dense ranks, tie-breaking and the persisted
leaderboard projection.
"""

import random
from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy import select

from friendleague.database.models import LeagueMember
from friendleague.services import league_service, membership_service, points_service, ranking_service
from friendleague.services.scopes import LEAGUE

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=pytz.UTC)


# ──────────────────────────────────────────────────────────────
# compute_ranks (pure)
# ──────────────────────────────────────────────────────────────


def test_compute_ranks_orders_by_points_desc():
    rows = [(1, 10, T0), (2, 30, T0 + timedelta(seconds=1)), (3, 20, T0 + timedelta(seconds=2))]
    assert ranking_service.compute_ranks(rows) == [(2, 1), (3, 2), (1, 3)]


def test_compute_ranks_ties_broken_by_earlier_join():
    rows = [
        (1, 5, T0 + timedelta(minutes=5)),
        (2, 5, T0),
        (3, 5, T0 + timedelta(minutes=1)),
    ]
    assert ranking_service.compute_ranks(rows) == [(2, 1), (3, 2), (1, 3)]


def test_compute_ranks_identical_join_time_falls_back_to_id():
    rows = [(7, 0, T0), (3, 0, T0), (5, 0, T0)]
    assert [row_id for row_id, _ in ranking_service.compute_ranks(rows)] == [3, 5, 7]


def test_compute_ranks_handles_negative_points():
    rows = [(1, -5, T0), (2, 0, T0 + timedelta(seconds=1)), (3, -1, T0 + timedelta(seconds=2))]
    assert ranking_service.compute_ranks(rows) == [(2, 1), (3, 2), (1, 3)]


def test_compute_ranks_mixes_naive_and_aware_timestamps():
    """SQLite returns naive datetimes; they are read as UTC."""
    rows = [(1, 0, T0 + timedelta(seconds=1)), (2, 0, T0.replace(tzinfo=None))]
    assert ranking_service.compute_ranks(rows) == [(2, 1), (1, 2)]


def test_compute_ranks_is_dense_for_random_input():
    rng = random.Random(42)
    rows = [
        (i, rng.randint(-50, 50), T0 + timedelta(seconds=rng.randint(0, 10)))
        for i in range(1, 41)
    ]
    ranks = ranking_service.compute_ranks(rows)
    assert sorted(rank for _, rank in ranks) == list(range(1, 41))

    by_id = {row[0]: row for row in rows}
    ordered = [by_id[row_id] for row_id, _ in ranks]
    for a, b in zip(ordered, ordered[1:]):
        assert (-a[1], a[2], a[0]) <= (-b[1], b[2], b[0])


def test_compute_ranks_empty():
    assert ranking_service.compute_ranks([]) == []


# ──────────────────────────────────────────────────────────────
# recompute / leaderboard (store-backed)
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_recompute_persists_dense_ranks(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Rank League")
    for name in ("bob", "carol", "dave"):
        await league_service.join_league(db_session, league["id"], users[name])

    await points_service.assign_points(
        db_session, LEAGUE, league["id"], users["alice"], users["carol"], 15, "WINS"
    )
    await points_service.assign_points(
        db_session, LEAGUE, league["id"], users["alice"], users["dave"], -3, "PENALTY"
    )
    await db_session.commit()

    result = await db_session.execute(
        select(LeagueMember.user_id, LeagueMember.rank)
        .where(LeagueMember.league_id == league["id"])
        .order_by(LeagueMember.rank)
    )
    rows = result.all()
    assert [rank for _, rank in rows] == [1, 2, 3, 4]
    assert [user_id for user_id, _ in rows] == [
        users["carol"], users["alice"], users["bob"], users["dave"]
    ]


@pytest.mark.asyncio
async def test_recompute_returns_written_pairs(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Pairs League")
    await league_service.join_league(db_session, league["id"], users["bob"])

    ranks = await ranking_service.recompute(db_session, LEAGUE, league["id"])
    assert [rank for _, rank in ranks] == [1, 2]


@pytest.mark.asyncio
async def test_leaderboard_matches_member_list_order(db_session, users):
    league = await league_service.create_league(db_session, users["alice"], "Board League")
    await league_service.join_league(db_session, league["id"], users["bob"])
    await league_service.join_league(db_session, league["id"], users["carol"])
    await league_service.assign_points(
        db_session, league["id"], users["alice"], users["bob"], 8, "BONUS"
    )

    board = await ranking_service.get_leaderboard(db_session, LEAGUE, league["id"])
    members = await membership_service.list_members(
        db_session, LEAGUE, league["id"], users["alice"]
    )

    assert [row["user_id"] for row in board] == [row["user_id"] for row in members]
    assert board[0] == {
        "user_id": users["bob"],
        "username": "bob",
        "avatar": None,
        "total_points": 8,
        "rank": 1,
    }
    assert [row["rank"] for row in board] == [1, 2, 3]
