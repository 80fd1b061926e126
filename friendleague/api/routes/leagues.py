"""League route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.db import get_db_session
from friendleague.services import league_service
from friendleague.services.exceptions import DomainError
from friendleague.api.auth_dependencies import require_user
from friendleague.api.routes import limiter, JOIN_RATE_LIMIT
from friendleague.models.schemas import (
    AdminResponse,
    EventSummary,
    JoinRequest,
    LeaderboardEntry,
    LeagueCreate,
    LeagueResponse,
    LeagueSummary,
    LeagueUpdate,
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


@router.post("/api/leagues", response_model=LeagueResponse)
async def create_league(
    payload: LeagueCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a new league. The caller becomes its owner and first member.
    """
    try:
        return await league_service.create_league(
            session,
            owner_id=user["id"],
            name=payload.name,
            description=payload.description,
            is_private=payload.is_private,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating league", e)


@router.get("/api/leagues", response_model=List[LeagueSummary])
async def list_leagues(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List leagues visible to the caller: public leagues plus private leagues
    they own, belong to or administer.
    """
    try:
        return await league_service.list_leagues(session, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing leagues", e)


@router.get("/api/leagues/{league_id}", response_model=LeagueResponse)
async def get_league(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Get league detail. Private leagues are visible to members and admins only.
    """
    try:
        return await league_service.get_league(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("getting league", e)


@router.put("/api/leagues/{league_id}", response_model=LeagueResponse)
async def update_league(
    league_id: int,
    payload: LeagueUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Update a league (admin only). Making a league private issues a new invite
    code; making it public clears the code.
    """
    try:
        return await league_service.update_league(
            session, league_id, user["id"], payload.model_dump(exclude_unset=True)
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("updating league", e)


@router.post("/api/leagues/{league_id}/join", response_model=LeagueResponse)
@limiter.limit(JOIN_RATE_LIMIT)
async def join_league(
    request: Request,
    league_id: int,
    payload: Optional[JoinRequest] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Join a league. Private leagues require their invite code.
    """
    try:
        return await league_service.join_league(
            session, league_id, user["id"], invite_code=payload.invite_code if payload else None
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("joining league", e)


@router.post("/api/leagues/{league_id}/leave", response_model=SuccessResponse)
async def leave_league(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Leave a league. The owner may leave only while another admin remains.
    """
    try:
        return await league_service.leave_league(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("leaving league", e)


@router.get("/api/leagues/{league_id}/members", response_model=List[MemberResponse])
async def list_league_members(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List members in rank order.
    """
    try:
        return await league_service.list_members(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing league members", e)


@router.post("/api/leagues/{league_id}/members", response_model=LeagueResponse)
async def add_league_member(
    league_id: int,
    payload: MemberAdd,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Add an existing user to the league (admin only, no invite code needed).
    """
    try:
        return await league_service.add_member(session, league_id, user["id"], payload.user_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("adding league member", e)


@router.delete("/api/leagues/{league_id}/members/{member_user_id}", response_model=SuccessResponse)
async def remove_league_member(
    league_id: int,
    member_user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Remove a member (admin only). The owner cannot be removed.
    """
    try:
        return await league_service.remove_member(session, league_id, user["id"], member_user_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("removing league member", e)


@router.post("/api/leagues/{league_id}/admins/{admin_user_id}", response_model=AdminResponse)
async def grant_league_admin(
    league_id: int,
    admin_user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Grant delegated admin rights to a member (admin only).
    """
    try:
        return await league_service.grant_admin(session, league_id, user["id"], admin_user_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("granting league admin", e)


@router.delete("/api/leagues/{league_id}/admins/{admin_user_id}", response_model=SuccessResponse)
async def revoke_league_admin(
    league_id: int,
    admin_user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Revoke delegated admin rights (admin only). The owner's rights are permanent.
    """
    try:
        return await league_service.revoke_admin(session, league_id, user["id"], admin_user_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("revoking league admin", e)


@router.get("/api/leagues/{league_id}/rules", response_model=List[RuleResponse])
async def list_league_rules(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List scoring rules, newest first.
    """
    try:
        return await league_service.list_rules(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing league rules", e)


@router.post("/api/leagues/{league_id}/rules", response_model=RuleResponse)
async def create_league_rule(
    league_id: int,
    payload: RuleCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a scoring rule (admin only).
    """
    try:
        return await league_service.create_rule(
            session,
            league_id,
            user["id"],
            title=payload.title,
            points=payload.points,
            category=payload.category,
            description=payload.description,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating league rule", e)


@router.put("/api/leagues/{league_id}/rules/{rule_id}", response_model=RuleResponse)
async def update_league_rule(
    league_id: int,
    rule_id: int,
    payload: RuleUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Partially update a scoring rule (admin only).
    """
    try:
        return await league_service.update_rule(
            session, league_id, user["id"], rule_id, payload.model_dump(exclude_unset=True)
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("updating league rule", e)


@router.post("/api/leagues/{league_id}/points", response_model=PointsAssignResponse)
async def assign_league_points(
    league_id: int,
    payload: PointsAssign,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Award or deduct points for a member (admin only). Ranks are recomputed.
    """
    try:
        return await league_service.assign_points(
            session,
            league_id,
            user["id"],
            target_user_id=payload.user_id,
            points=payload.points,
            category=payload.category,
            reason=payload.reason,
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("assigning league points", e)


@router.get("/api/leagues/{league_id}/leaderboard", response_model=List[LeaderboardEntry])
async def get_league_leaderboard(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Ranked member list.
    """
    try:
        return await league_service.get_leaderboard(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("getting league leaderboard", e)


@router.get("/api/leagues/{league_id}/events", response_model=List[EventSummary])
async def list_league_events(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Events linked to the league that the caller can see.
    """
    try:
        return await league_service.list_league_events(session, league_id, user["id"])
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing league events", e)
