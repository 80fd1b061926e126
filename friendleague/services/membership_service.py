"""
Membership directory for leagues (members) and events (participants).

Handles the join/leave lifecycle, admin-driven adds and removals, capacity
limits and the visibility-gated member list. Every successful change is
followed by a re-rank of the entity.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, insert, func, literal, Integer, DateTime
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import User
from friendleague.services import admin_service, ranking_service, user_service
from friendleague.services.exceptions import ConflictError, ForbiddenError, NotFoundError
from friendleague.services.scopes import EntityScope, load_entity
from friendleague.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def member_to_dict(scope: EntityScope, member) -> Dict:
    return {
        "id": member.id,
        scope.fk_name: getattr(member, scope.fk_name),
        "user_id": member.user_id,
        "total_points": member.points,
        "rank": member.rank,
        "joined_at": member.joined_at.isoformat() if member.joined_at else None,
    }


async def get_member(
    session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int
):
    """
    Fetch a membership row, refreshed from the store.

    Returns:
        LeagueMember / EventParticipant instance, or None
    """
    member = scope.member_model
    result = await session.execute(
        select(member)
        .where(scope.member_fk == entity_id, member.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_members(session: AsyncSession, scope: EntityScope, entity_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(scope.member_model).where(scope.member_fk == entity_id)
    )
    return result.scalar_one()


def _already_member_message(scope: EntityScope) -> str:
    return f"User is already a {scope.member_label} of this {scope.entity_label.lower()}"


async def insert_member(session: AsyncSession, scope: EntityScope, entity, user_id: int):
    """
    Insert a membership row with zero points, honouring max_participants.

    The capacity check is repeated inside the INSERT itself (``INSERT ...
    SELECT ... WHERE count < max``) so a concurrent join cannot overshoot the
    limit; the unique constraint on the pair backs the duplicate pre-check.

    Raises:
        ConflictError: If the user is already a member or the entity is full
    """
    if await get_member(session, scope, entity.id, user_id) is not None:
        raise ConflictError(_already_member_message(scope))

    table = scope.member_model.__table__
    columns = [scope.fk_name, "user_id", "points", "rank", "joined_at"]
    joined_at = utcnow()
    max_participants = getattr(entity, "max_participants", None)

    if max_participants is not None:
        if await count_members(session, scope, entity.id) >= max_participants:
            raise ConflictError(f"{scope.entity_label} is full")
        current = (
            select(func.count())
            .select_from(table)
            .where(table.c[scope.fk_name] == entity.id)
            .scalar_subquery()
        )
        row = select(
            literal(entity.id, Integer),
            literal(user_id, Integer),
            literal(0, Integer),
            literal(0, Integer),
            literal(joined_at, DateTime(timezone=True)),
        ).where(current < max_participants)
        stmt = insert(table).from_select(columns, row)
    else:
        stmt = insert(table).values(dict(zip(columns, [entity.id, user_id, 0, 0, joined_at])))

    try:
        result = await session.execute(stmt)
    except IntegrityError:
        await session.rollback()
        raise ConflictError(_already_member_message(scope))
    if result.rowcount == 0:
        raise ConflictError(f"{scope.entity_label} is full")

    return await get_member(session, scope, entity.id, user_id)


async def join(
    session: AsyncSession,
    scope: EntityScope,
    entity_id: int,
    user_id: int,
    invite_code: Optional[str] = None,
    skip_code_check: bool = False,
):
    """
    Self-service join.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        user_id: Joining user
        invite_code: Code required when the entity is private
        skip_code_check: Set when the caller already authorized the join
            (a redeemed targeted invitation)

    Returns:
        The new membership row, ranked

    Raises:
        NotFoundError: If the entity does not exist
        ForbiddenError: If the entity is private and the code does not match
        ConflictError: If already a member, or the entity is full
    """
    entity = await load_entity(session, scope, entity_id, for_update=True)
    if entity.is_private and not skip_code_check:
        if not entity.invite_code or invite_code != entity.invite_code:
            raise ForbiddenError("Invalid invite code")

    await insert_member(session, scope, entity, user_id)
    await ranking_service.recompute(session, scope, entity_id)
    logger.info("User %s joined %s %s", user_id, scope.entity_label.lower(), entity_id)
    return await get_member(session, scope, entity_id, user_id)


async def add_member(
    session: AsyncSession, scope: EntityScope, entity_id: int, admin_id: int, user_id: int
):
    """
    Admin adds an existing user, bypassing the invite code.

    Raises:
        NotFoundError: If the entity or the user does not exist
        ForbiddenError: If the caller is not an admin
        ConflictError: If already a member, or the entity is full
    """
    entity = await admin_service.require_admin(session, scope, entity_id, admin_id, for_update=True)
    if not await user_service.user_exists(session, user_id):
        raise NotFoundError("User not found")

    await insert_member(session, scope, entity, user_id)
    await ranking_service.recompute(session, scope, entity_id)
    logger.info(
        "Admin %s added user %s to %s %s", admin_id, user_id, scope.entity_label.lower(), entity_id
    )
    return await get_member(session, scope, entity_id, user_id)


async def _delete_member(session: AsyncSession, scope: EntityScope, entity_id: int, member) -> None:
    await admin_service.drop_admin_row(session, scope, entity_id, member.user_id)
    await session.delete(member)
    await session.flush()
    await ranking_service.recompute(session, scope, entity_id)


async def remove(
    session: AsyncSession, scope: EntityScope, entity_id: int, requester_id: int, user_id: int
) -> None:
    """
    Admin removes a member. The owner can never be removed.

    Raises:
        NotFoundError: If the entity does not exist or the user is not a member
        ForbiddenError: If the caller is not an admin, or the target is the owner
        ConflictError: If the removal would leave the league without a present admin
    """
    entity = await admin_service.require_admin(
        session, scope, entity_id, requester_id, for_update=True
    )
    if user_id == entity.owner_id:
        raise ForbiddenError("Cannot remove the owner")
    member = await get_member(session, scope, entity_id, user_id)
    if member is None:
        raise NotFoundError(f"User is not a {scope.member_label} of this {scope.entity_label.lower()}")
    await admin_service.ensure_admin_remains(session, scope, entity, user_id)

    await _delete_member(session, scope, entity_id, member)
    logger.info(
        "Admin %s removed user %s from %s %s",
        requester_id, user_id, scope.entity_label.lower(), entity_id,
    )


async def leave(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int) -> None:
    """
    Voluntary departure.

    Event owners can never leave. League owners may leave while another admin
    remains; their owner rights stay with the league record.

    Raises:
        NotFoundError: If the entity does not exist or the user is not a member
        ForbiddenError: If the user owns the event
        ConflictError: If the user is the league's last present admin
    """
    entity = await load_entity(session, scope, entity_id, for_update=True)
    member = await get_member(session, scope, entity_id, user_id)
    if member is None:
        raise NotFoundError(f"You are not a {scope.member_label} of this {scope.entity_label.lower()}")
    if not scope.supports_delegated_admins and entity.owner_id == user_id:
        raise ForbiddenError(
            f"The {scope.entity_label.lower()} owner cannot leave the {scope.entity_label.lower()}"
        )
    await admin_service.ensure_admin_remains(session, scope, entity, user_id)

    await _delete_member(session, scope, entity_id, member)
    logger.info("User %s left %s %s", user_id, scope.entity_label.lower(), entity_id)


async def list_members(
    session: AsyncSession, scope: EntityScope, entity_id: int, requester_id: int
) -> List[Dict]:
    """
    Members of a league or participants of an event, in rank order.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        requester_id: Caller, checked against the entity's visibility

    Returns:
        List of dicts with user_id, username, avatar, is_admin, joined_at,
        total_points and rank

    Raises:
        NotFoundError: If the entity does not exist
        ForbiddenError: If the entity is private and the caller cannot see it
    """
    entity = await admin_service.require_view(session, scope, entity_id, requester_id)
    admin_ids = await admin_service.delegated_admin_ids(session, scope, entity_id)
    admin_ids.add(entity.owner_id)

    member = scope.member_model
    result = await session.execute(
        select(member.user_id, member.points, member.rank, member.joined_at, User.username, User.avatar)
        .join(User, User.id == member.user_id)
        .where(scope.member_fk == entity_id)
        .order_by(member.rank.asc(), member.id.asc())
    )
    return [
        {
            "user_id": row.user_id,
            "username": row.username,
            "avatar": row.avatar,
            "is_admin": row.user_id in admin_ids,
            "joined_at": row.joined_at.isoformat() if row.joined_at else None,
            "total_points": row.points,
            "rank": row.rank,
        }
        for row in result.all()
    ]
