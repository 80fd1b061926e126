"""
SQLAlchemy ORM models for the friend league points engine.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from friendleague.database.db import Base
from friendleague.utils.datetime_utils import utcnow


class PointCategory(str, enum.Enum):
    """Classification of a rule or a point assignment."""

    WINS = "WINS"
    PARTICIPATION = "PARTICIPATION"
    BONUS = "BONUS"
    PENALTY = "PENALTY"


class InvitationStatus(str, enum.Enum):
    """Targeted invitation status. Transitions: PENDING → ACCEPTED."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"


_CATEGORY_CHECK = "category IN ('WINS', 'PARTICIPATION', 'BONUS', 'PENALTY')"


class User(Base):
    """User accounts. Owned by the authentication service, read-only here."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    avatar = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_users_username", "username"),)


class League(Base):
    """Friend leagues."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Primary admin
    is_private = Column(Boolean, default=False, nullable=False)
    invite_code = Column(String(8), nullable=True)  # Only set while private
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship("LeagueMember", back_populates="league", cascade="all, delete-orphan")
    admins = relationship("LeagueAdmin", back_populates="league", cascade="all, delete-orphan")
    rules = relationship("LeagueRule", back_populates="league", cascade="all, delete-orphan")
    events = relationship("Event", back_populates="league")

    __table_args__ = (
        Index("idx_leagues_owner", "owner_id"),
        Index("idx_leagues_invite_code", "invite_code"),
    )


class LeagueMember(Base):
    """Join table (User ↔ League) carrying points and rank."""

    __tablename__ = "league_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    points = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, default=0, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    league = relationship("League", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("league_id", "user_id", name="uq_league_members_league_user"),
        Index("idx_league_members_league", "league_id"),
        Index("idx_league_members_user", "user_id"),
    )


class LeagueAdmin(Base):
    """Delegated league admins. The owner is never stored here."""

    __tablename__ = "league_admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    granted_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )  # Admin who granted the rights
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    league = relationship("League", back_populates="admins")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("league_id", "user_id", name="uq_league_admins_league_user"),
        Index("idx_league_admins_league", "league_id"),
    )


class LeagueRule(Base):
    """Scoring rules defined by league admins."""

    __tablename__ = "league_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    points = Column(Integer, nullable=False)
    category = Column(String(20), nullable=False)  # PointCategory value
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    league = relationship("League", back_populates="rules")

    __table_args__ = (
        CheckConstraint(_CATEGORY_CHECK, name="ck_league_rules_category"),
        Index("idx_league_rules_league", "league_id"),
    )


class Event(Base):
    """Bounded activities, optionally linked to one league."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="SET NULL"), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    max_participants = Column(Integer, nullable=True)
    invite_code = Column(String(8), nullable=True)
    has_scoring = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    league = relationship("League", back_populates="events")
    owner = relationship("User", foreign_keys=[owner_id])
    participants = relationship(
        "EventParticipant", back_populates="event", cascade="all, delete-orphan"
    )
    rules = relationship("EventRule", back_populates="event", cascade="all, delete-orphan")
    invitations = relationship(
        "EventInvitation", back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_events_dates"),
        Index("idx_events_league", "league_id"),
        Index("idx_events_owner", "owner_id"),
        Index("idx_events_start_date", "start_date"),
    )


class EventParticipant(Base):
    """Join table (User ↔ Event) carrying points and rank."""

    __tablename__ = "event_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    points = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, default=0, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    event = relationship("Event", back_populates="participants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participants_event_user"),
        Index("idx_event_participants_event", "event_id"),
        Index("idx_event_participants_user", "user_id"),
    )


class EventRule(Base):
    """Scoring rules defined by the event owner."""

    __tablename__ = "event_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    points = Column(Integer, nullable=False)
    category = Column(String(20), nullable=False)  # PointCategory value
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    event = relationship("Event", back_populates="rules")

    __table_args__ = (
        CheckConstraint(_CATEGORY_CHECK, name="ck_event_rules_category"),
        Index("idx_event_rules_event", "event_id"),
    )


class EventInvitation(Base):
    """Targeted, expiring, single-use event invitations.

    Codes are looked up without the event id, so they are globally unique.
    Expiry is not stored as a status; it is checked when the code is used.
    """

    __tablename__ = "event_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(8), nullable=False, unique=True)
    email = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    status = Column(String(20), nullable=False, default=InvitationStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    accepted_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    event = relationship("Event", back_populates="invitations")

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED')", name="ck_event_invitations_status"
        ),
        Index("idx_event_invitations_code", "code", unique=True),
        Index("idx_event_invitations_event", "event_id"),
    )
