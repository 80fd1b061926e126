"""
Admin authorization.

The owner of a league or event is always an admin. Leagues may additionally
delegate admin rights to members; events are administered by their owner only.
"""

import logging
from typing import Dict, List, Set

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import User
from friendleague.services.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from friendleague.services.scopes import EntityScope, load_entity

logger = logging.getLogger(__name__)


async def _is_delegated(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int) -> bool:
    if not scope.supports_delegated_admins:
        return False
    admin = scope.admin_model
    result = await session.execute(
        select(admin.id).where(getattr(admin, scope.fk_name) == entity_id, admin.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def _is_member(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int) -> bool:
    member = scope.member_model
    result = await session.execute(
        select(member.id).where(scope.member_fk == entity_id, member.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def delegated_admin_ids(session: AsyncSession, scope: EntityScope, entity_id: int) -> Set[int]:
    if not scope.supports_delegated_admins:
        return set()
    admin = scope.admin_model
    result = await session.execute(
        select(admin.user_id).where(getattr(admin, scope.fk_name) == entity_id)
    )
    return set(result.scalars().all())


async def is_admin_of(session: AsyncSession, scope: EntityScope, entity, user_id: int) -> bool:
    """Admin check against an already-loaded entity."""
    if entity.owner_id == user_id:
        return True
    return await _is_delegated(session, scope, entity.id, user_id)


async def is_admin(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int) -> bool:
    """
    Check whether a user is the owner or a delegated admin.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        user_id: User to check

    Returns:
        True if the user may administer the entity

    Raises:
        NotFoundError: If the entity does not exist
    """
    entity = await load_entity(session, scope, entity_id)
    return await is_admin_of(session, scope, entity, user_id)


async def require_admin(
    session: AsyncSession,
    scope: EntityScope,
    entity_id: int,
    user_id: int,
    for_update: bool = False,
):
    """
    Load the entity and ensure the user administers it.

    Returns:
        The League or Event instance

    Raises:
        NotFoundError: If the entity does not exist
        ForbiddenError: If the user is not an admin
    """
    entity = await load_entity(session, scope, entity_id, for_update=for_update)
    if not await is_admin_of(session, scope, entity, user_id):
        if scope.supports_delegated_admins:
            raise ForbiddenError(f"Only {scope.entity_label.lower()} admins can perform this action")
        raise ForbiddenError(f"Only the {scope.entity_label.lower()} owner can perform this action")
    return entity


async def can_view(session: AsyncSession, scope: EntityScope, entity, user_id: int) -> bool:
    """Public entities are visible to everyone; private ones to members and admins."""
    if not entity.is_private:
        return True
    if await is_admin_of(session, scope, entity, user_id):
        return True
    return await _is_member(session, scope, entity.id, user_id)


async def require_view(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int):
    """
    Load the entity and ensure the user may see its details.

    Raises:
        NotFoundError: If the entity does not exist
        ForbiddenError: If the entity is private and the user is neither member nor admin
    """
    entity = await load_entity(session, scope, entity_id)
    if not await can_view(session, scope, entity, user_id):
        raise ForbiddenError(f"You do not have access to this {scope.entity_label.lower()}")
    return entity


async def ensure_admin_remains(
    session: AsyncSession, scope: EntityScope, entity, departing_user_id: int
) -> None:
    """
    Refuse a departure that would leave a league without any present admin.

    A league keeps an admin while its owner is still a member, or while at
    least one delegated admin remains.

    Raises:
        ConflictError: If ``departing_user_id`` is the last present admin
    """
    if not scope.supports_delegated_admins:
        return
    remaining = await delegated_admin_ids(session, scope, entity.id)
    remaining.discard(departing_user_id)
    if remaining:
        return
    if entity.owner_id != departing_user_id and await _is_member(
        session, scope, entity.id, entity.owner_id
    ):
        return
    raise ConflictError(
        f"The {scope.entity_label.lower()} must keep at least one admin. "
        "Grant admin rights to another member first."
    )


async def list_admins(session: AsyncSession, scope: EntityScope, entity_id: int) -> List[Dict]:
    """Delegated admins of a league, oldest grant first."""
    if not scope.supports_delegated_admins:
        return []
    admin = scope.admin_model
    result = await session.execute(
        select(admin, User.username, User.avatar)
        .join(User, User.id == admin.user_id)
        .where(getattr(admin, scope.fk_name) == entity_id)
        .order_by(admin.created_at.asc(), admin.id.asc())
    )
    return [
        {
            "user_id": row[0].user_id,
            "username": row.username,
            "avatar": row.avatar,
            "granted_by": row[0].granted_by,
            "created_at": row[0].created_at.isoformat() if row[0].created_at else None,
        }
        for row in result.all()
    ]


async def grant(
    session: AsyncSession, scope: EntityScope, entity_id: int, granter_id: int, user_id: int
) -> Dict:
    """
    Delegate admin rights to a member.

    Args:
        session: Database session
        scope: Must support delegated admins (leagues)
        entity_id: Entity ID
        granter_id: Admin performing the grant
        user_id: Member receiving admin rights

    Returns:
        Dict describing the new admin grant

    Raises:
        BadRequestError: If the entity type has no delegated admins
        NotFoundError: If the entity does not exist or the user is not a member
        ForbiddenError: If the granter is not an admin
        ConflictError: If the user is the owner or already a delegated admin
    """
    if not scope.supports_delegated_admins:
        raise BadRequestError(f"{scope.entity_label}s do not support delegated admins")

    entity = await require_admin(session, scope, entity_id, granter_id, for_update=True)
    if user_id == entity.owner_id:
        raise ConflictError(f"User is the {scope.entity_label.lower()} owner and already an admin")
    if not await _is_member(session, scope, entity_id, user_id):
        raise NotFoundError(f"User is not a {scope.member_label} of this {scope.entity_label.lower()}")
    if await _is_delegated(session, scope, entity_id, user_id):
        raise ConflictError("User is already an admin")

    row = scope.admin_model(**{scope.fk_name: entity_id, "user_id": user_id, "granted_by": granter_id})
    session.add(row)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("User is already an admin")

    logger.info(
        "Granted %s %s admin rights to user %s (by %s)",
        scope.entity_label.lower(), entity_id, user_id, granter_id,
    )
    return {
        "user_id": user_id,
        scope.fk_name: entity_id,
        "granted_by": granter_id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


async def revoke(
    session: AsyncSession, scope: EntityScope, entity_id: int, revoker_id: int, user_id: int
) -> None:
    """
    Remove a delegated admin grant. The owner's rights cannot be revoked.

    Raises:
        BadRequestError: If the entity type has no delegated admins
        NotFoundError: If the entity does not exist or the user holds no delegated grant
        ForbiddenError: If the revoker is not an admin, or the target is the owner
        ConflictError: If the revocation would leave the league without a present admin
    """
    if not scope.supports_delegated_admins:
        raise BadRequestError(f"{scope.entity_label}s do not support delegated admins")

    entity = await require_admin(session, scope, entity_id, revoker_id, for_update=True)
    if user_id == entity.owner_id:
        raise ForbiddenError(f"Cannot revoke the {scope.entity_label.lower()} owner's admin rights")
    if not await _is_delegated(session, scope, entity_id, user_id):
        raise NotFoundError("User is not an admin of this " + scope.entity_label.lower())
    await ensure_admin_remains(session, scope, entity, user_id)

    admin = scope.admin_model
    await session.execute(
        delete(admin).where(getattr(admin, scope.fk_name) == entity_id, admin.user_id == user_id)
    )
    logger.info(
        "Revoked %s %s admin rights from user %s (by %s)",
        scope.entity_label.lower(), entity_id, user_id, revoker_id,
    )


async def drop_admin_row(session: AsyncSession, scope: EntityScope, entity_id: int, user_id: int) -> None:
    """Delete a delegated admin grant if one exists."""
    if not scope.supports_delegated_admins:
        return
    admin = scope.admin_model
    await session.execute(
        delete(admin).where(getattr(admin, scope.fk_name) == entity_id, admin.user_id == user_id)
    )

