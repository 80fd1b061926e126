"""
Event service: public operations on events.

Events are administered by their owner. An event may be linked to one league
at creation; points assigned in a linked event also count towards the league.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import Event, EventParticipant, League
from friendleague.services import (
    admin_service,
    invite_service,
    membership_service,
    points_service,
    ranking_service,
    rule_service,
    user_service,
)
from friendleague.services.exceptions import BadRequestError, NotFoundError
from friendleague.services.scopes import EVENT, LEAGUE, load_entity
from friendleague.utils.datetime_utils import utcnow, ensure_utc

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200
MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 100


def _validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH:
        raise BadRequestError(
            f"Event title must be {MIN_TITLE_LENGTH}-{MAX_TITLE_LENGTH} characters"
        )
    return title


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise BadRequestError(
            f"Event description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    return description


def _validate_max_participants(max_participants: Optional[int]) -> Optional[int]:
    if max_participants is not None and not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
        raise BadRequestError(
            f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}"
        )
    return max_participants


def _validate_dates(start_date: datetime, end_date: datetime):
    if start_date is None or end_date is None:
        raise BadRequestError("start_date and end_date are required")
    start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
    if end_date < start_date:
        raise BadRequestError("end_date must not be before start_date")
    return start_date, end_date


def event_summary(event: Event, participant_count: Optional[int] = None) -> Dict:
    summary = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "league_id": event.league_id,
        "owner_id": event.owner_id,
        "start_date": ensure_utc(event.start_date).isoformat(),
        "end_date": ensure_utc(event.end_date).isoformat(),
        "is_private": event.is_private,
        "max_participants": event.max_participants,
        "has_scoring": event.has_scoring,
        "created_at": event.created_at.isoformat() if event.created_at else None,
        "updated_at": event.updated_at.isoformat() if event.updated_at else None,
    }
    if participant_count is not None:
        summary["participant_count"] = participant_count
    return summary


async def _event_detail(session: AsyncSession, event_id: int, user_id: int) -> Dict:
    """Aggregate view: event, owner, linked league, ranked participants, rules
    and, for the admin only, pending invitations."""
    event = await load_entity(session, EVENT, event_id)
    participants = await membership_service.list_members(session, EVENT, event_id, user_id)
    is_admin = await admin_service.is_admin_of(session, EVENT, event, user_id)

    league = None
    if event.league_id is not None:
        result = await session.execute(
            select(League.id, League.name).where(League.id == event.league_id)
        )
        row = result.first()
        if row is not None:
            league = {"id": row.id, "name": row.name}

    detail = event_summary(event, participant_count=len(participants))
    detail.update(
        {
            "invite_code": event.invite_code,
            "owner": await user_service.get_user_brief(session, event.owner_id),
            "league": league,
            "participants": participants,
            "rules": await rule_service.get_rules(session, EVENT, event_id),
            "is_admin": is_admin,
            "is_participant": any(p["user_id"] == user_id for p in participants),
        }
    )
    if is_admin:
        detail["pending_invitations"] = await invite_service.get_invitations(
            session, event_id, pending_only=True
        )
    return detail


async def create_event(
    session: AsyncSession,
    owner_id: int,
    title: str,
    start_date: datetime,
    end_date: datetime,
    description: Optional[str] = None,
    league_id: Optional[int] = None,
    is_private: bool = False,
    max_participants: Optional[int] = None,
    has_scoring: bool = True,
    participant_ids: Optional[Iterable[int]] = None,
) -> Dict:
    """
    Create an event. The creator becomes its owner and first participant.

    Args:
        session: Database session
        owner_id: Creating user
        title: Event title (3-50 characters)
        start_date: Start of the event
        end_date: End of the event, not before start_date
        description: Optional description
        league_id: League to link the event to; fixed for the event's lifetime
        is_private: Private events get an invite code
        max_participants: Optional capacity (2-100)
        has_scoring: Informational flag for clients
        participant_ids: Additional users to enrol immediately

    Returns:
        Event detail dict

    Raises:
        NotFoundError: If the league or a listed participant does not exist
        ForbiddenError: If the creator is not an admin of the league
        BadRequestError: If a field is invalid or the initial participants exceed capacity
    """
    title = _validate_title(title)
    description = _validate_description(description)
    start_date, end_date = _validate_dates(start_date, end_date)
    max_participants = _validate_max_participants(max_participants)

    if league_id is not None:
        await admin_service.require_admin(session, LEAGUE, league_id, owner_id)

    # Owner first so it wins ties on identical join times
    enrol = [owner_id]
    for user_id in participant_ids or []:
        if user_id not in enrol:
            enrol.append(user_id)
    existing = await user_service.get_existing_user_ids(session, enrol)
    missing = [user_id for user_id in enrol if user_id not in existing]
    if missing:
        raise NotFoundError(f"Users not found: {', '.join(str(m) for m in missing)}")
    if max_participants is not None and len(enrol) > max_participants:
        raise BadRequestError(
            f"Cannot add {len(enrol)} participants to an event limited to {max_participants}"
        )

    event = Event(
        title=title,
        description=description,
        league_id=league_id,
        owner_id=owner_id,
        start_date=start_date,
        end_date=end_date,
        is_private=False,
        max_participants=max_participants,
        has_scoring=has_scoring,
    )
    await invite_service.apply_privacy(session, EVENT, event, is_private)
    session.add(event)
    await session.flush()

    joined_at = utcnow()
    session.add_all(
        [
            EventParticipant(event_id=event.id, user_id=user_id, points=0, rank=0, joined_at=joined_at)
            for user_id in enrol
        ]
    )
    await ranking_service.recompute(session, EVENT, event.id)
    await session.commit()

    logger.info("Event %s created by user %s (league %s)", event.id, owner_id, league_id)
    return await _event_detail(session, event.id, owner_id)


async def list_events(session: AsyncSession, user_id: int) -> List[Dict]:
    """
    Events visible to a user: public ones plus private ones they own or
    participate in. Soonest first.
    """
    participant_of = select(EventParticipant.event_id).where(EventParticipant.user_id == user_id)
    participant_count = (
        select(func.count(EventParticipant.id))
        .where(EventParticipant.event_id == Event.id)
        .correlate(Event)
        .scalar_subquery()
    )
    result = await session.execute(
        select(Event, participant_count.label("participant_count"))
        .where(
            or_(
                Event.is_private.is_(False),
                Event.owner_id == user_id,
                Event.id.in_(participant_of),
            )
        )
        .order_by(Event.start_date.asc(), Event.id.asc())
    )
    return [event_summary(row[0], row.participant_count) for row in result.all()]


async def get_event(session: AsyncSession, event_id: int, user_id: int) -> Dict:
    """
    Event detail.

    Raises:
        NotFoundError: If the event does not exist
        ForbiddenError: If the event is private and the user is neither participant nor owner
    """
    await admin_service.require_view(session, EVENT, event_id, user_id)
    return await _event_detail(session, event_id, user_id)


async def update_event(session: AsyncSession, event_id: int, user_id: int, updates: Dict) -> Dict:
    """
    Partially update an event. Owner only. The league link cannot change.

    Lowering max_participants below the current count is allowed; it only
    blocks further joins.
    """
    event = await admin_service.require_admin(session, EVENT, event_id, user_id, for_update=True)
    if "title" in updates:
        event.title = _validate_title(updates["title"])
    if "description" in updates:
        event.description = _validate_description(updates["description"])
    if updates.get("start_date") is not None or updates.get("end_date") is not None:
        event.start_date, event.end_date = _validate_dates(
            updates.get("start_date") or event.start_date,
            updates.get("end_date") or event.end_date,
        )
    if "max_participants" in updates:
        event.max_participants = _validate_max_participants(updates["max_participants"])
    if updates.get("has_scoring") is not None:
        event.has_scoring = updates["has_scoring"]
    if updates.get("is_private") is not None:
        await invite_service.apply_privacy(session, EVENT, event, updates["is_private"])
    await session.flush()
    await session.commit()
    return await _event_detail(session, event_id, user_id)


async def join_event(
    session: AsyncSession, event_id: int, user_id: int, invite_code: Optional[str] = None
) -> Dict:
    await membership_service.join(session, EVENT, event_id, user_id, invite_code=invite_code)
    await session.commit()
    return await _event_detail(session, event_id, user_id)


async def leave_event(session: AsyncSession, event_id: int, user_id: int) -> Dict:
    await membership_service.leave(session, EVENT, event_id, user_id)
    await session.commit()
    return {"success": True}


async def list_participants(session: AsyncSession, event_id: int, user_id: int) -> List[Dict]:
    return await membership_service.list_members(session, EVENT, event_id, user_id)


async def add_participant(session: AsyncSession, event_id: int, admin_id: int, user_id: int) -> Dict:
    await membership_service.add_member(session, EVENT, event_id, admin_id, user_id)
    await session.commit()
    return await _event_detail(session, event_id, admin_id)


async def remove_participant(
    session: AsyncSession, event_id: int, admin_id: int, user_id: int
) -> Dict:
    await membership_service.remove(session, EVENT, event_id, admin_id, user_id)
    await session.commit()
    return {"success": True}


async def create_rule(
    session: AsyncSession,
    event_id: int,
    admin_id: int,
    title: str,
    points: int,
    category,
    description: Optional[str] = None,
) -> Dict:
    rule = await rule_service.create_rule(
        session, EVENT, event_id, admin_id, title, points, category, description
    )
    await session.commit()
    return rule


async def update_rule(
    session: AsyncSession, event_id: int, admin_id: int, rule_id: int, updates: Dict
) -> Dict:
    rule = await rule_service.update_rule(session, EVENT, event_id, admin_id, rule_id, updates)
    await session.commit()
    return rule


async def list_rules(session: AsyncSession, event_id: int, user_id: int) -> List[Dict]:
    return await rule_service.list_rules(session, EVENT, event_id, user_id)


async def assign_points(
    session: AsyncSession,
    event_id: int,
    admin_id: int,
    target_user_id: int,
    points: int,
    category,
    reason: Optional[str] = None,
) -> Dict:
    """
    Assign points to a participant and mirror them onto the linked league.

    Event and league updates commit together or not at all.
    """
    result = await points_service.assign_points(
        session, EVENT, event_id, admin_id, target_user_id, points, category, reason
    )
    await session.commit()
    return result


async def get_leaderboard(session: AsyncSession, event_id: int, user_id: int) -> List[Dict]:
    await admin_service.require_view(session, EVENT, event_id, user_id)
    return await ranking_service.get_leaderboard(session, EVENT, event_id)


async def create_invitation(
    session: AsyncSession,
    event_id: int,
    admin_id: int,
    email: Optional[str] = None,
    phone_number: Optional[str] = None,
    expires_in_days: Optional[int] = None,
) -> Dict:
    invitation = await invite_service.create_invitation(
        session, event_id, admin_id, email, phone_number, expires_in_days
    )
    await session.commit()
    return invitation


async def use_invitation(session: AsyncSession, event_id: int, user_id: int, code: str) -> Dict:
    await invite_service.use_invitation(session, event_id, user_id, code)
    await session.commit()
    return await _event_detail(session, event_id, user_id)


async def list_invitations(session: AsyncSession, event_id: int, admin_id: int) -> List[Dict]:
    return await invite_service.list_invitations(session, event_id, admin_id)
