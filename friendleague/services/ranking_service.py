"""
Ranking engine.

Ranks are dense positions 1..N: points descending, ties broken by the earlier
join time and then by row id. They are recomputed in memory after every
mutation that can move a row and written back in a single batched UPDATE.
"""

from typing import Iterable, List, Dict, Tuple
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import User
from friendleague.services.scopes import EntityScope
from friendleague.utils.datetime_utils import ensure_utc


def _sort_key(row):
    row_id, points, joined_at = row[0], row[1], row[2]
    return (-(points or 0), ensure_utc(joined_at), row_id)


def compute_ranks(rows: Iterable[Tuple]) -> List[Tuple[int, int]]:
    """
    Assign dense ranks to member rows.

    Args:
        rows: Iterable of ``(row_id, points, joined_at)`` tuples

    Returns:
        List of ``(row_id, rank)`` in rank order, ranks starting at 1
    """
    ordered = sorted(rows, key=_sort_key)
    return [(row[0], position) for position, row in enumerate(ordered, start=1)]


async def recompute(session: AsyncSession, scope: EntityScope, entity_id: int) -> List[Tuple[int, int]]:
    """
    Recompute and persist ranks for every member of a league or event.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID

    Returns:
        The ``(row_id, rank)`` pairs that were written
    """
    await session.flush()
    member = scope.member_model
    result = await session.execute(
        select(member.id, member.points, member.joined_at).where(scope.member_fk == entity_id)
    )
    ranks = compute_ranks(result.all())
    if ranks:
        # ORM bulk UPDATE by primary key: one executemany round trip
        await session.execute(
            update(member),
            [{"id": row_id, "rank": rank} for row_id, rank in ranks],
        )
    return ranks


async def get_leaderboard(session: AsyncSession, scope: EntityScope, entity_id: int) -> List[Dict]:
    """
    Read-only ranked projection of a league's members or an event's participants.

    Visibility is checked by the caller.
    """
    member = scope.member_model
    result = await session.execute(
        select(member.user_id, member.points, member.rank, User.username, User.avatar)
        .join(User, User.id == member.user_id)
        .where(scope.member_fk == entity_id)
        .order_by(member.points.desc(), member.joined_at.asc(), member.id.asc())
    )
    return [
        {
            "user_id": row.user_id,
            "username": row.username,
            "avatar": row.avatar,
            "total_points": row.points,
            "rank": row.rank,
        }
        for row in result.all()
    ]
