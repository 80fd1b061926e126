"""
League service: public operations on leagues.

Each mutating operation authorizes, validates, mutates, re-ranks and commits
once. The entity row is locked (SELECT ... FOR UPDATE) by the first step of
every mutation, so mutations on one league are serialized.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import League, LeagueMember, LeagueAdmin, Event, EventParticipant
from friendleague.services import (
    admin_service,
    event_service,
    invite_service,
    membership_service,
    points_service,
    ranking_service,
    rule_service,
    user_service,
)
from friendleague.services.exceptions import BadRequestError
from friendleague.services.scopes import LEAGUE, load_entity
from friendleague.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200


def _validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        raise BadRequestError(
            f"League name must be {MIN_NAME_LENGTH}-{MAX_NAME_LENGTH} characters"
        )
    return name


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise BadRequestError(
            f"League description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    return description


def _league_summary(league: League, member_count: int = 0) -> Dict:
    return {
        "id": league.id,
        "name": league.name,
        "description": league.description,
        "owner_id": league.owner_id,
        "is_private": league.is_private,
        "member_count": member_count,
        "created_at": league.created_at.isoformat() if league.created_at else None,
        "updated_at": league.updated_at.isoformat() if league.updated_at else None,
    }


async def _league_detail(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    """Aggregate view: league, owner, ranked members, admins and rules."""
    league = await load_entity(session, LEAGUE, league_id)
    members = await membership_service.list_members(session, LEAGUE, league_id, user_id)
    detail = _league_summary(league, member_count=len(members))
    detail.update(
        {
            "invite_code": league.invite_code,
            "owner": await user_service.get_user_brief(session, league.owner_id),
            "members": members,
            "admins": await admin_service.list_admins(session, LEAGUE, league_id),
            "rules": await rule_service.get_rules(session, LEAGUE, league_id),
            "is_admin": await admin_service.is_admin_of(session, LEAGUE, league, user_id),
            "is_member": any(m["user_id"] == user_id for m in members),
        }
    )
    return detail


async def create_league(
    session: AsyncSession,
    owner_id: int,
    name: str,
    description: Optional[str] = None,
    is_private: bool = False,
) -> Dict:
    """
    Create a league. The creator becomes its owner and first member (rank 1).

    Args:
        session: Database session
        owner_id: Creating user
        name: League name (3-50 characters)
        description: Optional description (max 200 characters)
        is_private: Private leagues get an invite code

    Returns:
        League detail dict
    """
    league = League(
        name=_validate_name(name),
        description=_validate_description(description),
        owner_id=owner_id,
        is_private=False,
    )
    await invite_service.apply_privacy(session, LEAGUE, league, is_private)
    session.add(league)
    await session.flush()

    session.add(
        LeagueMember(league_id=league.id, user_id=owner_id, points=0, rank=1, joined_at=utcnow())
    )
    await session.flush()
    await session.commit()

    logger.info("League %s created by user %s", league.id, owner_id)
    return await _league_detail(session, league.id, owner_id)


async def list_leagues(session: AsyncSession, user_id: int) -> List[Dict]:
    """
    Leagues visible to a user: public ones, plus private ones they own,
    belong to or administer. Newest first.
    """
    member_of = select(LeagueMember.league_id).where(LeagueMember.user_id == user_id)
    admin_of = select(LeagueAdmin.league_id).where(LeagueAdmin.user_id == user_id)
    member_count = (
        select(func.count(LeagueMember.id))
        .where(LeagueMember.league_id == League.id)
        .correlate(League)
        .scalar_subquery()
    )
    result = await session.execute(
        select(League, member_count.label("member_count"))
        .where(
            or_(
                League.is_private.is_(False),
                League.owner_id == user_id,
                League.id.in_(member_of),
                League.id.in_(admin_of),
            )
        )
        .order_by(League.created_at.desc(), League.id.desc())
    )
    return [_league_summary(row[0], row.member_count) for row in result.all()]


async def get_league(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    """
    League detail.

    Raises:
        NotFoundError: If the league does not exist
        ForbiddenError: If the league is private and the user is neither member nor admin
    """
    await admin_service.require_view(session, LEAGUE, league_id, user_id)
    return await _league_detail(session, league_id, user_id)


async def update_league(session: AsyncSession, league_id: int, user_id: int, updates: Dict) -> Dict:
    """
    Partially update name, description and privacy. Admin only.

    Turning privacy on issues a new invite code; turning it off clears it.
    """
    league = await admin_service.require_admin(session, LEAGUE, league_id, user_id, for_update=True)
    if "name" in updates:
        league.name = _validate_name(updates["name"])
    if "description" in updates:
        league.description = _validate_description(updates["description"])
    if updates.get("is_private") is not None:
        await invite_service.apply_privacy(session, LEAGUE, league, updates["is_private"])
    await session.flush()
    await session.commit()
    return await _league_detail(session, league_id, user_id)


async def join_league(
    session: AsyncSession, league_id: int, user_id: int, invite_code: Optional[str] = None
) -> Dict:
    await membership_service.join(session, LEAGUE, league_id, user_id, invite_code=invite_code)
    await session.commit()
    return await _league_detail(session, league_id, user_id)


async def leave_league(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    await membership_service.leave(session, LEAGUE, league_id, user_id)
    await session.commit()
    return {"success": True}


async def list_members(session: AsyncSession, league_id: int, user_id: int) -> List[Dict]:
    return await membership_service.list_members(session, LEAGUE, league_id, user_id)


async def add_member(session: AsyncSession, league_id: int, admin_id: int, user_id: int) -> Dict:
    await membership_service.add_member(session, LEAGUE, league_id, admin_id, user_id)
    await session.commit()
    return await _league_detail(session, league_id, admin_id)


async def remove_member(session: AsyncSession, league_id: int, admin_id: int, user_id: int) -> Dict:
    await membership_service.remove(session, LEAGUE, league_id, admin_id, user_id)
    await session.commit()
    return {"success": True}


async def grant_admin(session: AsyncSession, league_id: int, granter_id: int, user_id: int) -> Dict:
    admin = await admin_service.grant(session, LEAGUE, league_id, granter_id, user_id)
    await session.commit()
    return admin


async def revoke_admin(session: AsyncSession, league_id: int, revoker_id: int, user_id: int) -> Dict:
    await admin_service.revoke(session, LEAGUE, league_id, revoker_id, user_id)
    await session.commit()
    return {"success": True}


async def create_rule(
    session: AsyncSession,
    league_id: int,
    admin_id: int,
    title: str,
    points: int,
    category,
    description: Optional[str] = None,
) -> Dict:
    rule = await rule_service.create_rule(
        session, LEAGUE, league_id, admin_id, title, points, category, description
    )
    await session.commit()
    return rule


async def update_rule(
    session: AsyncSession, league_id: int, admin_id: int, rule_id: int, updates: Dict
) -> Dict:
    rule = await rule_service.update_rule(session, LEAGUE, league_id, admin_id, rule_id, updates)
    await session.commit()
    return rule


async def list_rules(session: AsyncSession, league_id: int, user_id: int) -> List[Dict]:
    return await rule_service.list_rules(session, LEAGUE, league_id, user_id)


async def assign_points(
    session: AsyncSession,
    league_id: int,
    admin_id: int,
    target_user_id: int,
    points: int,
    category,
    reason: Optional[str] = None,
) -> Dict:
    result = await points_service.assign_points(
        session, LEAGUE, league_id, admin_id, target_user_id, points, category, reason
    )
    await session.commit()
    return result


async def get_leaderboard(session: AsyncSession, league_id: int, user_id: int) -> List[Dict]:
    """Ranked members. Same visibility as the member list."""
    await admin_service.require_view(session, LEAGUE, league_id, user_id)
    return await ranking_service.get_leaderboard(session, LEAGUE, league_id)


async def list_league_events(session: AsyncSession, league_id: int, user_id: int) -> List[Dict]:
    """
    Events linked to a league that the user can see, soonest first.

    Private events are listed only for their owner and participants.
    """
    await admin_service.require_view(session, LEAGUE, league_id, user_id)
    participant_of = select(EventParticipant.event_id).where(EventParticipant.user_id == user_id)
    result = await session.execute(
        select(Event)
        .where(
            Event.league_id == league_id,
            or_(
                Event.is_private.is_(False),
                Event.owner_id == user_id,
                Event.id.in_(participant_of),
            ),
        )
        .order_by(Event.start_date.asc(), Event.id.asc())
    )
    return [event_service.event_summary(event) for event in result.scalars().all()]
