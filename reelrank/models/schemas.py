"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reelrank.database.models import CompetitionMetric, CompetitionType
from reelrank.utils.constants import MAX_LENGTH_IN, MAX_WEIGHT_LBS, MIN_MAX_PARTICIPANTS


class CompetitionCreate(BaseModel):
    """Request to create a competition. Dates default from the type."""

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    type: CompetitionType
    metric: CompetitionMetric
    target_species_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_public: bool = True
    max_participants: Optional[int] = Field(default=None, ge=MIN_MAX_PARTICIPANTS)


class CompetitionUpdate(BaseModel):
    """Partial competition update; only provided fields change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    metric: Optional[CompetitionMetric] = None
    target_species_id: Optional[int] = None
    is_public: Optional[bool] = None
    max_participants: Optional[int] = Field(default=None, ge=MIN_MAX_PARTICIPANTS)


class CompetitionResponse(BaseModel):
    """Competition data."""

    id: int
    creator_id: int
    name: str
    description: Optional[str] = None
    type: str
    metric: str
    metric_label: str
    target_species_id: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str
    is_public: bool
    max_participants: Optional[int] = None
    participants_count: Optional[int] = None
    created_at: Optional[str] = None


class ParticipantResponse(BaseModel):
    """Competition participant row."""

    id: int
    competition_id: int
    user_id: int
    score: float
    catch_count: int
    best_catch_id: Optional[int] = None
    rank: Optional[int] = None
    joined_at: Optional[str] = None


class BestCatch(BaseModel):
    id: int
    fish_species_id: int
    weight: Optional[float] = None
    length: Optional[float] = None
    points: int
    caught_at: Optional[str] = None


class CompetitionLeaderboardEntry(BaseModel):
    """A ranked participant."""

    participant_id: int
    user_id: int
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    score: float
    formatted_score: str
    catch_count: int
    rank: int
    best_catch: Optional[BestCatch] = None


class CompetitionRankResponse(BaseModel):
    competition_id: int
    user_id: int
    rank: Optional[int] = None
    score: float
    catch_count: int
    total_ranked: int


class InviteRequest(BaseModel):
    """Invite a user to a competition."""

    invitee_id: int


class InvitationRespondRequest(BaseModel):
    accept: bool


class InvitationResponse(BaseModel):
    """Competition invitation."""

    model_config = ConfigDict(extra="allow")

    id: int
    competition_id: int
    inviter_id: int
    invitee_id: int
    status: str
    created_at: Optional[str] = None
    responded_at: Optional[str] = None


class CatchCreate(BaseModel):
    """
    Request to log a catch.

    Points are computed by the server; there is no points field.
    """

    fish_species_id: int
    weight: Optional[float] = Field(default=None, gt=0, lt=MAX_WEIGHT_LBS)
    length: Optional[float] = Field(default=None, gt=0, lt=MAX_LENGTH_IN)
    caught_at: Optional[datetime] = None
    tackle_item_id: Optional[int] = None
    location_id: Optional[int] = None
    notes: Optional[str] = None


class CatchUpdate(BaseModel):
    """Partial catch update; only provided fields change."""

    fish_species_id: Optional[int] = None
    weight: Optional[float] = Field(default=None, gt=0, lt=MAX_WEIGHT_LBS)
    length: Optional[float] = Field(default=None, gt=0, lt=MAX_LENGTH_IN)
    caught_at: Optional[datetime] = None
    tackle_item_id: Optional[int] = None
    location_id: Optional[int] = None
    notes: Optional[str] = None


class CatchResponse(BaseModel):
    """Catch data."""

    id: int
    user_id: int
    fish_species_id: int
    weight: Optional[float] = None
    length: Optional[float] = None
    tackle_item_id: Optional[int] = None
    location_id: Optional[int] = None
    caught_at: Optional[str] = None
    points: int
    weather: Optional[Dict] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    bonuses: Optional[List[str]] = None


class PointsPreviewRequest(BaseModel):
    weight: Optional[float] = Field(default=None, gt=0, lt=MAX_WEIGHT_LBS)
    length: Optional[float] = Field(default=None, gt=0, lt=MAX_LENGTH_IN)
    caught_at: Optional[datetime] = None


class PointsPreviewResponse(BaseModel):
    points: int
    bonuses: List[str]


class LeaderboardEntry(BaseModel):
    """Global/state/friends leaderboard row."""

    user_id: int
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    total_catches: int
    total_points: int
    biggest_fish_weight: Optional[float] = None
    biggest_fish_length: Optional[float] = None
    rank: int


class UserRankResponse(BaseModel):
    user_id: int
    state: str
    rank: Optional[int] = None
    total_points: int
    total_catches: int


class FriendRequestCreate(BaseModel):
    friend_id: int


class FriendshipResponse(BaseModel):
    id: int
    user_id: int
    friend_id: int
    status: str
    created_at: Optional[str] = None
    responded_at: Optional[str] = None


class FriendResponse(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    state: Optional[str] = None


class NotificationResponse(BaseModel):
    """Notification data."""

    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[Dict] = None
    is_read: bool
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class PushTokenRequest(BaseModel):
    token: str = Field(min_length=1)


class TackleFromUrlRequest(BaseModel):
    url: str = Field(min_length=1)


class TackleItemResponse(BaseModel):
    id: int
    user_id: int
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    specifications: Optional[Dict[str, str]] = None
    created_at: Optional[str] = None


class ScoreJobResponse(BaseModel):
    id: int
    job_type: str
    competition_id: Optional[int] = None
    user_id: Optional[int] = None
    status: str
    attempts: int
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    next_attempt_at: Optional[str] = None
    error_message: Optional[str] = None


class QueueStatusResponse(BaseModel):
    running: List[ScoreJobResponse]
    pending: List[ScoreJobResponse]
    recent_completed: List[ScoreJobResponse]
    recent_failed: List[ScoreJobResponse]
