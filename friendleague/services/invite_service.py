"""
Invite codes and targeted event invitations.

Two mechanisms:
- a reusable 8-character code carried by every private league or event,
  required for self-service joins;
- targeted, expiring, single-use invitations for events, redeemed by code.
"""

import os
import secrets
import string
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import EventInvitation, InvitationStatus
from friendleague.services import admin_service, membership_service
from friendleague.services.exceptions import BadRequestError, ConflictError, NotFoundError
from friendleague.services.scopes import EntityScope, EVENT, load_entity
from friendleague.utils.datetime_utils import utcnow, ensure_utc

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10

DEFAULT_EXPIRES_IN_DAYS = int(os.getenv("INVITATION_DEFAULT_DAYS", "7"))
MIN_EXPIRES_IN_DAYS = 1
MAX_EXPIRES_IN_DAYS = 30


def generate_invite_code() -> str:
    """Random 8-character code from A-Z and 0-9."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def issue_unique_code(session: AsyncSession, column) -> str:
    """
    Generate a code not yet present in ``column``.

    Args:
        session: Database session
        column: Mapped column the code will be looked up by
            (e.g. ``League.invite_code`` or ``EventInvitation.code``)

    Returns:
        An unused code

    Raises:
        RuntimeError: If no unused code was found within MAX_CODE_ATTEMPTS
    """
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_invite_code()
        result = await session.execute(select(column).where(column == code).limit(1))
        if result.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique invite code")


async def apply_privacy(session: AsyncSession, scope: EntityScope, entity, is_private: bool) -> None:
    """
    Set an entity's privacy flag, keeping its invite code consistent.

    Every request to make the entity private issues a fresh code; sending
    is_private=True again rotates it. Turning privacy off clears the code.
    """
    if is_private:
        entity.invite_code = await issue_unique_code(session, scope.entity_model.invite_code)
    else:
        entity.invite_code = None
    entity.is_private = is_private


def invitation_to_dict(invitation: EventInvitation) -> Dict:
    return {
        "id": invitation.id,
        "event_id": invitation.event_id,
        "code": invitation.code,
        "email": invitation.email,
        "phone_number": invitation.phone_number,
        "status": invitation.status,
        "expires_at": ensure_utc(invitation.expires_at).isoformat(),
        "created_by": invitation.created_by,
        "accepted_by_user_id": invitation.accepted_by_user_id,
        "accepted_at": ensure_utc(invitation.accepted_at).isoformat() if invitation.accepted_at else None,
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
    }


async def create_invitation(
    session: AsyncSession,
    event_id: int,
    admin_id: int,
    email: Optional[str] = None,
    phone_number: Optional[str] = None,
    expires_in_days: Optional[int] = None,
) -> Dict:
    """
    Create a targeted, single-use invitation to an event.

    Args:
        session: Database session
        event_id: Event ID
        admin_id: Caller, must own the event
        email: Invitee email (informational)
        phone_number: Invitee phone number (informational)
        expires_in_days: Lifetime in days (1-30, default 7)

    Returns:
        Dict describing the PENDING invitation, including its code

    Raises:
        NotFoundError: If the event does not exist
        ForbiddenError: If the caller is not the event admin
        BadRequestError: If expires_in_days is out of range
    """
    if expires_in_days is None:
        expires_in_days = DEFAULT_EXPIRES_IN_DAYS
    if not MIN_EXPIRES_IN_DAYS <= expires_in_days <= MAX_EXPIRES_IN_DAYS:
        raise BadRequestError(
            f"expires_in_days must be between {MIN_EXPIRES_IN_DAYS} and {MAX_EXPIRES_IN_DAYS}"
        )

    await admin_service.require_admin(session, EVENT, event_id, admin_id, for_update=True)

    invitation = EventInvitation(
        event_id=event_id,
        code=await issue_unique_code(session, EventInvitation.code),
        email=email,
        phone_number=phone_number,
        status=InvitationStatus.PENDING.value,
        expires_at=utcnow() + timedelta(days=expires_in_days),
        created_by=admin_id,
    )
    session.add(invitation)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Invitation code collision, please retry")

    logger.info("Created invitation %s for event %s", invitation.id, event_id)
    return invitation_to_dict(invitation)


async def use_invitation(session: AsyncSession, event_id: int, user_id: int, code: str):
    """
    Redeem a targeted invitation: join the event and mark the invitation accepted.

    The join bypasses the event's own invite code; capacity and duplicate
    checks still apply. The invitation row stays locked until commit so two
    redemptions cannot both succeed.

    Args:
        session: Database session
        event_id: Event the invitation is expected to belong to
        user_id: Redeeming user
        code: Invitation code

    Returns:
        The new EventParticipant row

    Raises:
        NotFoundError: If the code does not exist
        ConflictError: If the code belongs to another event, was already used,
            has expired, or the join itself conflicts
    """
    result = await session.execute(
        select(EventInvitation)
        .where(EventInvitation.code == code)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFoundError("Invitation not found")
    if invitation.event_id != event_id:
        raise ConflictError("Invitation does not belong to this event")
    await load_entity(session, EVENT, event_id, for_update=True)
    if invitation.status != InvitationStatus.PENDING.value:
        raise ConflictError("Invitation has already been used")
    now = utcnow()
    if ensure_utc(invitation.expires_at) < now:
        raise ConflictError("Invitation has expired")

    participant = await membership_service.join(
        session, EVENT, event_id, user_id, skip_code_check=True
    )

    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.accepted_by_user_id = user_id
    invitation.accepted_at = now
    await session.flush()

    logger.info("User %s redeemed invitation %s for event %s", user_id, invitation.id, event_id)
    return participant


async def list_invitations(
    session: AsyncSession, event_id: int, admin_id: int, pending_only: bool = False
) -> List[Dict]:
    """
    Invitations of an event, newest first. Admin only.

    Raises:
        NotFoundError: If the event does not exist
        ForbiddenError: If the caller is not the event admin
    """
    await admin_service.require_admin(session, EVENT, event_id, admin_id)
    return await get_invitations(session, event_id, pending_only=pending_only)


async def get_invitations(
    session: AsyncSession, event_id: int, pending_only: bool = False
) -> List[Dict]:
    query = select(EventInvitation).where(EventInvitation.event_id == event_id)
    if pending_only:
        query = query.where(EventInvitation.status == InvitationStatus.PENDING.value)
    query = query.order_by(EventInvitation.created_at.desc(), EventInvitation.id.desc())
    result = await session.execute(query)
    return [invitation_to_dict(inv) for inv in result.scalars().all()]
