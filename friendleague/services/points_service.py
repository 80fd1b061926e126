"""
Points ledger and event-to-league propagation.

Points are additive and signed; assigning is not idempotent. The increment is
executed in the store (``points = points + delta``) so concurrent assignments
never lose an update. Points earned in an event that belongs to a league are
mirrored onto the user's league membership in the same transaction.
"""

import logging
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.services import admin_service, membership_service, ranking_service
from friendleague.services.exceptions import BadRequestError, NotFoundError
from friendleague.services.rule_service import normalize_category
from friendleague.services.scopes import EntityScope, LEAGUE, EVENT, load_entity

logger = logging.getLogger(__name__)

MIN_POINTS_DELTA = -1000
MAX_POINTS_DELTA = 1000
MAX_REASON_LENGTH = 100


async def _increment(session: AsyncSession, scope: EntityScope, member_id: int, delta: int) -> None:
    member = scope.member_model
    await session.execute(
        update(member)
        .where(member.id == member_id)
        .values(points=member.points + delta)
        .execution_options(synchronize_session=False)
    )


async def propagate_to_league(
    session: AsyncSession, league_id: int, user_id: int, delta: int
) -> bool:
    """
    Mirror an event point delta onto the user's league membership.

    Skips silently when the league no longer exists or the user is not a
    member of it. Never writes back to any event.

    Args:
        session: Database session (same transaction as the event update)
        league_id: League linked to the event
        user_id: User who received the points
        delta: Signed point delta

    Returns:
        True if the league membership was updated and re-ranked
    """
    try:
        await load_entity(session, LEAGUE, league_id, for_update=True)
    except NotFoundError:
        logger.warning("Skipping propagation: league %s no longer exists", league_id)
        return False

    member = await membership_service.get_member(session, LEAGUE, league_id, user_id)
    if member is None:
        logger.debug(
            "Skipping propagation: user %s is not a member of league %s", user_id, league_id
        )
        return False

    await _increment(session, LEAGUE, member.id, delta)
    await ranking_service.recompute(session, LEAGUE, league_id)
    return True


async def assign_points(
    session: AsyncSession,
    scope: EntityScope,
    entity_id: int,
    admin_id: int,
    target_user_id: int,
    delta: int,
    category,
    reason: Optional[str] = None,
) -> Dict:
    """
    Award (or deduct) points to a member or participant.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        admin_id: Caller, must administer the entity
        target_user_id: Member receiving the points
        delta: Signed point delta (-1000..1000)
        category: PointCategory (or its string value)
        reason: Optional free-text reason (max 100 characters)

    Returns:
        Dict with the updated member record under ``member`` (leagues) or
        ``participant`` (events), plus points_added, category and reason.
        Events also report ``propagated_to_league``.

    Raises:
        NotFoundError: If the entity does not exist or the target is not a member
        ForbiddenError: If the caller is not an admin
        BadRequestError: If delta, category or reason is invalid
    """
    if delta is None or not MIN_POINTS_DELTA <= delta <= MAX_POINTS_DELTA:
        raise BadRequestError(
            f"Points must be between {MIN_POINTS_DELTA} and {MAX_POINTS_DELTA}"
        )
    if reason is not None and len(reason) > MAX_REASON_LENGTH:
        raise BadRequestError(f"Reason must be at most {MAX_REASON_LENGTH} characters")
    category_value = normalize_category(category)

    entity = await admin_service.require_admin(session, scope, entity_id, admin_id, for_update=True)
    member = await membership_service.get_member(session, scope, entity_id, target_user_id)
    if member is None:
        raise NotFoundError(
            f"User is not a {scope.member_label} of this {scope.entity_label.lower()}"
        )

    await _increment(session, scope, member.id, delta)
    await ranking_service.recompute(session, scope, entity_id)
    member = await membership_service.get_member(session, scope, entity_id, target_user_id)

    response = {
        scope.member_label: membership_service.member_to_dict(scope, member),
        "points_added": delta,
        "category": category_value,
        "reason": reason,
    }

    if scope is EVENT:
        propagated = False
        if entity.league_id is not None:
            propagated = await propagate_to_league(
                session, entity.league_id, target_user_id, delta
            )
        response["propagated_to_league"] = propagated

    logger.info(
        "Assigned %s points (%s) to user %s in %s %s",
        delta, category_value, target_user_id, scope.entity_label.lower(), entity_id,
    )
    return response
