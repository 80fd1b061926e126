"""
Entity scopes.

Leagues and events share membership, rule, points and ranking logic. A scope
bundles the models and labels that differ between the two, so each component
is written once and called with either ``LEAGUE`` or ``EVENT``.
"""

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.services.exceptions import NotFoundError
from friendleague.database.models import (
    League,
    LeagueMember,
    LeagueAdmin,
    LeagueRule,
    Event,
    EventParticipant,
    EventRule,
)


@dataclass(frozen=True)
class EntityScope:
    entity_model: Any
    member_model: Any
    rule_model: Any
    admin_model: Optional[Any]  # None: only the owner administers the entity
    fk_name: str
    entity_label: str
    member_label: str

    @property
    def member_fk(self):
        """Foreign key column on the member table pointing at the entity."""
        return getattr(self.member_model, self.fk_name)

    @property
    def rule_fk(self):
        return getattr(self.rule_model, self.fk_name)

    @property
    def supports_delegated_admins(self) -> bool:
        return self.admin_model is not None


LEAGUE = EntityScope(
    entity_model=League,
    member_model=LeagueMember,
    rule_model=LeagueRule,
    admin_model=LeagueAdmin,
    fk_name="league_id",
    entity_label="League",
    member_label="member",
)

EVENT = EntityScope(
    entity_model=Event,
    member_model=EventParticipant,
    rule_model=EventRule,
    admin_model=None,
    fk_name="event_id",
    entity_label="Event",
    member_label="participant",
)


async def load_entity(
    session: AsyncSession, scope: EntityScope, entity_id: int, for_update: bool = False
):
    """
    Load a league or event, refreshing any stale identity-map copy.

    Pending changes are flushed first so the refresh cannot discard them.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        for_update: Lock the row until the transaction ends

    Returns:
        The League or Event instance

    Raises:
        NotFoundError: If the entity does not exist
    """
    await session.flush()
    model = scope.entity_model
    query = (
        select(model)
        .where(model.id == entity_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundError(f"{scope.entity_label} not found")
    return entity
