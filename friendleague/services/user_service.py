"""
Read-only user lookups. Accounts are created by the authentication service.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from friendleague.database.models import User


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "phone_number": user.phone_number,
        "avatar": user.avatar,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def user_exists(session: AsyncSession, user_id: int) -> bool:
    result = await session.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


async def get_existing_user_ids(session: AsyncSession, user_ids) -> set:
    """Return the subset of ``user_ids`` that belong to existing users."""
    if not user_ids:
        return set()
    result = await session.execute(select(User.id).where(User.id.in_(list(user_ids))))
    return set(result.scalars().all())


async def get_user_brief(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """Public profile fields (id, username, avatar) embedded in aggregate views."""
    result = await session.execute(
        select(User.id, User.username, User.avatar).where(User.id == user_id)
    )
    row = result.first()
    if row is None:
        return None
    return {"id": row.id, "username": row.username, "avatar": row.avatar}
