"""Event route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.db import get_db_session
from friendleague.services import event_service
from friendleague.services.exceptions import DomainError
from friendleague.api.auth_dependencies import require_user
from friendleague.api.routes import limiter, JOIN_RATE_LIMIT
from friendleague.models.schemas import (
    EventCreate,
    EventResponse,
    EventSummary,
    EventUpdate,
    InvitationCreate,
    InvitationResponse,
    InvitationUse,
    JoinRequest,
    LeaderboardEntry,
    MemberAdd,
    MemberResponse,
    PointsAssign,
    PointsAssignResponse,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    SuccessResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error("Error %s: %s", action, e, exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


@router.post("/api/events", response_model=EventResponse)
async def create_event(
    payload: EventCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create an event. The caller becomes its owner and first participant.
    Linking the event to a league requires league admin rights.
    """
    try:
        return await event_service.create_event(
            session,
            owner_id=user["id"],
            title=payload.title,
            start_date=payload.start_date,
            end_date=payload.end_date,
            description=payload.description,
            league_id=payload.league_id,
            is_private=payload.is_private,
            max_participants=payload.max_participants,
            has_scoring=payload.has_scoring,
            participant_ids=payload.participant_ids,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating event", e)


@router.get("/api/events", response_model=List[EventSummary])
async def list_events(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List events visible to the caller.
    """
    try:
        return await event_service.list_events(session, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing events", e)


@router.get("/api/events/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Get event detail. Pending invitations are included for the owner only.
    """
    try:
        return await event_service.get_event(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("getting event", e)


@router.put("/api/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    payload: EventUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Update an event (owner only).
    """
    try:
        return await event_service.update_event(
            session, event_id, user["id"], payload.model_dump(exclude_unset=True)
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("updating event", e)


@router.post("/api/events/{event_id}/join", response_model=EventResponse)
@limiter.limit(JOIN_RATE_LIMIT)
async def join_event(
    request: Request,
    event_id: int,
    payload: Optional[JoinRequest] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Join an event. Private events require their invite code.
    """
    try:
        return await event_service.join_event(
            session, event_id, user["id"], invite_code=payload.invite_code if payload else None
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("joining event", e)


@router.post("/api/events/{event_id}/leave", response_model=SuccessResponse)
async def leave_event(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Leave an event. The owner cannot leave.
    """
    try:
        return await event_service.leave_event(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("leaving event", e)


@router.get("/api/events/{event_id}/participants", response_model=List[MemberResponse])
async def list_event_participants(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.list_participants(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing event participants", e)


@router.post("/api/events/{event_id}/participants", response_model=EventResponse)
async def add_event_participant(
    event_id: int,
    payload: MemberAdd,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Add an existing user to the event (owner only). Capacity still applies.
    """
    try:
        return await event_service.add_participant(session, event_id, user["id"], payload.user_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("adding event participant", e)


@router.delete(
    "/api/events/{event_id}/participants/{participant_user_id}", response_model=SuccessResponse
)
async def remove_event_participant(
    event_id: int,
    participant_user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.remove_participant(
            session, event_id, user["id"], participant_user_id
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("removing event participant", e)


@router.get("/api/events/{event_id}/rules", response_model=List[RuleResponse])
async def list_event_rules(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.list_rules(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing event rules", e)


@router.post("/api/events/{event_id}/rules", response_model=RuleResponse)
async def create_event_rule(
    event_id: int,
    payload: RuleCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.create_rule(
            session,
            event_id,
            user["id"],
            title=payload.title,
            points=payload.points,
            category=payload.category,
            description=payload.description,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating event rule", e)


@router.put("/api/events/{event_id}/rules/{rule_id}", response_model=RuleResponse)
async def update_event_rule(
    event_id: int,
    rule_id: int,
    payload: RuleUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.update_rule(
            session, event_id, user["id"], rule_id, payload.model_dump(exclude_unset=True)
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("updating event rule", e)


@router.post("/api/events/{event_id}/points", response_model=PointsAssignResponse)
async def assign_event_points(
    event_id: int,
    payload: PointsAssign,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Award or deduct points for a participant (owner only). If the event
    belongs to a league, the same delta is applied to the league membership.
    """
    try:
        return await event_service.assign_points(
            session,
            event_id,
            user["id"],
            target_user_id=payload.user_id,
            points=payload.points,
            category=payload.category,
            reason=payload.reason,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("assigning event points", e)


@router.get("/api/events/{event_id}/leaderboard", response_model=List[LeaderboardEntry])
async def get_event_leaderboard(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await event_service.get_leaderboard(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("getting event leaderboard", e)


@router.get("/api/events/{event_id}/invitations", response_model=List[InvitationResponse])
async def list_event_invitations(
    event_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List all invitations of the event (owner only), newest first.
    """
    try:
        return await event_service.list_invitations(session, event_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing event invitations", e)


@router.post("/api/events/{event_id}/invitations", response_model=InvitationResponse)
async def create_event_invitation(
    event_id: int,
    payload: InvitationCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a targeted invitation (owner only). Expires after 7 days unless
    expires_in_days (1-30) says otherwise.
    """
    try:
        return await event_service.create_invitation(
            session,
            event_id,
            user["id"],
            email=payload.email,
            phone_number=payload.phone_number,
            expires_in_days=payload.expires_in_days,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating event invitation", e)


@router.post("/api/events/{event_id}/invitations/use", response_model=EventResponse)
@limiter.limit(JOIN_RATE_LIMIT)
async def use_event_invitation(
    request: Request,
    event_id: int,
    payload: InvitationUse,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Redeem a targeted invitation and join the event.
    """
    try:
        return await event_service.use_invitation(session, event_id, user["id"], payload.code)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("using event invitation", e)
