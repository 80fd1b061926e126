"""
Rule catalog: scoring rules published by league and event admins.

Rules describe how points are earned. They are advisory: assigning points
does not require a matching rule.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from friendleague.database.models import PointCategory
from friendleague.services import admin_service
from friendleague.services.exceptions import BadRequestError, NotFoundError
from friendleague.services.scopes import EntityScope

logger = logging.getLogger(__name__)

MIN_RULE_POINTS = -1000
MAX_RULE_POINTS = 1000
MAX_TITLE_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200

UPDATABLE_FIELDS = ("title", "description", "points", "category")


def rule_to_dict(scope: EntityScope, rule) -> Dict:
    return {
        "id": rule.id,
        scope.fk_name: getattr(rule, scope.fk_name),
        "title": rule.title,
        "description": rule.description,
        "points": rule.points,
        "category": rule.category,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
        "updated_at": rule.updated_at.isoformat() if rule.updated_at else None,
    }


def normalize_category(category) -> str:
    """
    Coerce a category to its stored string value.

    Raises:
        BadRequestError: If the value is not a PointCategory
    """
    try:
        return PointCategory(category).value
    except ValueError:
        raise BadRequestError(
            f"Invalid category '{category}'. Must be one of: "
            + ", ".join(c.value for c in PointCategory)
        )


def _validate_fields(fields: Dict) -> Dict:
    cleaned = {}
    for key, value in fields.items():
        if key == "title":
            title = (value or "").strip()
            if not title or len(title) > MAX_TITLE_LENGTH:
                raise BadRequestError(f"Rule title must be 1-{MAX_TITLE_LENGTH} characters")
            cleaned[key] = title
        elif key == "description":
            if value is not None and len(value) > MAX_DESCRIPTION_LENGTH:
                raise BadRequestError(
                    f"Rule description must be at most {MAX_DESCRIPTION_LENGTH} characters"
                )
            cleaned[key] = value
        elif key == "points":
            if value is None or not MIN_RULE_POINTS <= value <= MAX_RULE_POINTS:
                raise BadRequestError(
                    f"Rule points must be between {MIN_RULE_POINTS} and {MAX_RULE_POINTS}"
                )
            cleaned[key] = value
        elif key == "category":
            cleaned[key] = normalize_category(value)
    return cleaned


async def create_rule(
    session: AsyncSession,
    scope: EntityScope,
    entity_id: int,
    admin_id: int,
    title: str,
    points: int,
    category,
    description: Optional[str] = None,
) -> Dict:
    """
    Create a scoring rule.

    Args:
        session: Database session
        scope: LEAGUE or EVENT
        entity_id: Entity ID
        admin_id: Caller, must administer the entity
        title: Rule title (1-50 characters)
        points: Suggested point value (-1000..1000)
        category: PointCategory (or its string value)
        description: Optional description (max 200 characters)

    Returns:
        Dict describing the new rule

    Raises:
        NotFoundError: If the entity does not exist
        ForbiddenError: If the caller is not an admin
        BadRequestError: If a field is out of range
    """
    await admin_service.require_admin(session, scope, entity_id, admin_id, for_update=True)
    fields = _validate_fields(
        {"title": title, "description": description, "points": points, "category": category}
    )
    rule = scope.rule_model(**{scope.fk_name: entity_id}, **fields)
    session.add(rule)
    await session.flush()
    logger.info(
        "Created rule %s for %s %s", rule.id, scope.entity_label.lower(), entity_id
    )
    return rule_to_dict(scope, rule)


async def update_rule(
    session: AsyncSession,
    scope: EntityScope,
    entity_id: int,
    admin_id: int,
    rule_id: int,
    updates: Dict,
) -> Dict:
    """
    Partially update a rule. Only keys present in ``updates`` change.

    Raises:
        NotFoundError: If the entity does not exist or the rule is not one of its rules
        ForbiddenError: If the caller is not an admin
        BadRequestError: If a field is out of range
    """
    await admin_service.require_admin(session, scope, entity_id, admin_id, for_update=True)
    rule_model = scope.rule_model
    result = await session.execute(
        select(rule_model).where(rule_model.id == rule_id, scope.rule_fk == entity_id)
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFoundError(f"Rule not found in this {scope.entity_label.lower()}")

    fields = _validate_fields({k: v for k, v in updates.items() if k in UPDATABLE_FIELDS})
    for key, value in fields.items():
        setattr(rule, key, value)
    await session.flush()
    return rule_to_dict(scope, rule)


async def list_rules(
    session: AsyncSession, scope: EntityScope, entity_id: int, requester_id: int
) -> List[Dict]:
    """Rules of a league or event, newest first. Requires visibility."""
    await admin_service.require_view(session, scope, entity_id, requester_id)
    return await get_rules(session, scope, entity_id)


async def get_rules(session: AsyncSession, scope: EntityScope, entity_id: int) -> List[Dict]:
    rule_model = scope.rule_model
    result = await session.execute(
        select(rule_model)
        .where(scope.rule_fk == entity_id)
        .order_by(rule_model.created_at.desc(), rule_model.id.desc())
    )
    return [rule_to_dict(scope, rule) for rule in result.scalars().all()]
