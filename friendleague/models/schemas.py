"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator

from friendleague.database.models import PointCategory
from friendleague.utils.datetime_utils import ensure_utc


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    success: bool = True


class UserBrief(BaseModel):
    """Public profile fields embedded in other responses."""

    id: int
    username: str
    avatar: Optional[str] = None


class MemberResponse(BaseModel):
    """Row of a member or participant list."""

    user_id: int
    username: str
    avatar: Optional[str] = None
    is_admin: bool
    joined_at: Optional[str] = None
    total_points: int
    rank: int


class LeaderboardEntry(BaseModel):
    user_id: int
    username: str
    avatar: Optional[str] = None
    total_points: int
    rank: int


class MembershipRecord(BaseModel):
    """A single membership row after a points change."""

    id: int
    league_id: Optional[int] = None
    event_id: Optional[int] = None
    user_id: int
    total_points: int
    rank: int
    joined_at: Optional[str] = None


class JoinRequest(BaseModel):
    """Self-service join. The invite code is required for private entities."""

    invite_code: Optional[str] = Field(default=None, max_length=16)


class MemberAdd(BaseModel):
    """Admin adds an existing user."""

    user_id: int


# ---------------------------------------------------------------------------
# Rules and points
# ---------------------------------------------------------------------------


class RuleCreate(BaseModel):
    """Request to create a scoring rule."""

    title: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    points: int = Field(..., ge=-1000, le=1000)
    category: PointCategory


class RuleUpdate(BaseModel):
    """Partial rule update. Omitted fields are left unchanged."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    points: Optional[int] = Field(default=None, ge=-1000, le=1000)
    category: Optional[PointCategory] = None


class RuleResponse(BaseModel):
    id: int
    league_id: Optional[int] = None
    event_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    points: int
    category: PointCategory
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PointsAssign(BaseModel):
    """Request to award (or deduct) points."""

    user_id: int
    points: int = Field(..., ge=-1000, le=1000)
    category: PointCategory
    reason: Optional[str] = Field(default=None, max_length=100)


class PointsAssignResponse(BaseModel):
    """Updated record plus the echoed delta. ``member`` for leagues, ``participant`` for events."""

    member: Optional[MembershipRecord] = None
    participant: Optional[MembershipRecord] = None
    points_added: int
    category: PointCategory
    reason: Optional[str] = None
    propagated_to_league: Optional[bool] = None


# ---------------------------------------------------------------------------
# Leagues
# ---------------------------------------------------------------------------


class LeagueCreate(BaseModel):
    """Request to create a league."""

    name: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    is_private: bool = False


class LeagueUpdate(BaseModel):
    """Partial league update."""

    name: Optional[str] = Field(default=None, min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    is_private: Optional[bool] = None


class AdminResponse(BaseModel):
    """Delegated league admin."""

    user_id: int
    username: Optional[str] = None
    avatar: Optional[str] = None
    league_id: Optional[int] = None
    granted_by: Optional[int] = None
    created_at: Optional[str] = None


class LeagueSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    is_private: bool
    member_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LeagueResponse(LeagueSummary):
    """League detail: owner, ranked members, delegated admins and rules."""

    invite_code: Optional[str] = None
    owner: Optional[UserBrief] = None
    members: List[MemberResponse] = []
    admins: List[AdminResponse] = []
    rules: List[RuleResponse] = []
    is_admin: bool = False
    is_member: bool = False


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventCreate(BaseModel):
    """Request to create an event, optionally inside a league."""

    title: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    league_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_private: bool = False
    max_participants: Optional[int] = Field(default=None, ge=2, le=100)
    has_scoring: bool = True
    participant_ids: List[int] = []

    @model_validator(mode="after")
    def validate_dates(self):
        """Ensure the event does not end before it starts."""
        if ensure_utc(self.end_date) < ensure_utc(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self


class EventUpdate(BaseModel):
    """Partial event update. The league link cannot be changed."""

    title: Optional[str] = Field(default=None, min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_private: Optional[bool] = None
    max_participants: Optional[int] = Field(default=None, ge=2, le=100)
    has_scoring: Optional[bool] = None

    @model_validator(mode="after")
    def validate_dates(self):
        if self.start_date and self.end_date and ensure_utc(self.end_date) < ensure_utc(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self


class LeagueRef(BaseModel):
    id: int
    name: str


class InvitationCreate(BaseModel):
    """Request to invite someone to an event."""

    email: Optional[str] = None
    phone_number: Optional[str] = None
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=30)


class InvitationUse(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


class InvitationResponse(BaseModel):
    id: int
    event_id: int
    code: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    status: str
    expires_at: str
    created_by: Optional[int] = None
    accepted_by_user_id: Optional[int] = None
    accepted_at: Optional[str] = None
    created_at: Optional[str] = None


class EventSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    league_id: Optional[int] = None
    owner_id: int
    start_date: str
    end_date: str
    is_private: bool
    max_participants: Optional[int] = None
    has_scoring: bool = True
    participant_count: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EventResponse(EventSummary):
    """Event detail. ``pending_invitations`` is only present for the event admin."""

    invite_code: Optional[str] = None
    owner: Optional[UserBrief] = None
    league: Optional[LeagueRef] = None
    participants: List[MemberResponse] = []
    rules: List[RuleResponse] = []
    is_admin: bool = False
    is_participant: bool = False
    pending_invitations: Optional[List[InvitationResponse]] = None
