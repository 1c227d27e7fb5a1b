"""
SQLAlchemy ORM models for the fishing competition scoring system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reelrank.database.db import Base


class CompetitionType(str, enum.Enum):
    """Competition type enum. Determines the default duration."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class CompetitionMetric(str, enum.Enum):
    """Competition metric enum. Determines the scoring function."""

    POINTS = "points"
    CATCHES = "catches"
    WEIGHT = "weight"
    LENGTH = "length"


class CompetitionStatus(str, enum.Enum):
    """Competition status enum."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvitationStatus(str, enum.Enum):
    """Competition invitation status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class FriendshipStatus(str, enum.Enum):
    """Friendship status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    COMPETITION_INVITE = "competition_invite"
    COMPETITION_UPDATE = "competition_update"


class ScoreJobType(str, enum.Enum):
    """Score recomputation job type enum."""

    PARTICIPANT = "participant"
    COMPETITION = "competition"
    LEADERBOARD_USER = "leaderboard_user"
    LEADERBOARD_REBUILD = "leaderboard_rebuild"


class ScoreJobStatus(str, enum.Enum):
    """Score recomputation job status enum."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _enum_values(enum_cls) -> str:
    return ", ".join(repr(e.value) for e in enum_cls)


class User(Base):
    """Angler profiles."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    state = Column(String, nullable=True)  # Home state, used for state leaderboards
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_users_state", "state"),)


class FishSpecies(Base):
    """Fish species catalogue."""

    __tablename__ = "fish_species"

    id = Column(Integer, primary_key=True, autoincrement=True)
    common_name = Column(String, nullable=False, unique=True)
    scientific_name = Column(String, nullable=True)
    image_url = Column(String(500), nullable=True)


class Location(Base):
    """Fishing spots."""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    state = Column(String, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TackleItem(Base):
    """Tackle box items (lures, rods, reels, ...)."""

    __tablename__ = "tackle_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    brand = Column(String, nullable=True)
    model = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)
    image_url = Column(String(1000), nullable=True)
    product_url = Column(String(1000), nullable=True)
    specifications = Column(Text, nullable=True)  # JSON string of scraped specs
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_tackle_items_user", "user_id"),)


class Catch(Base):
    """A single logged fishing event."""

    __tablename__ = "catches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    fish_species_id = Column(Integer, ForeignKey("fish_species.id"), nullable=False)
    weight = Column(Float, nullable=True)  # pounds
    length = Column(Float, nullable=True)  # inches
    tackle_item_id = Column(Integer, ForeignKey("tackle_items.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    caught_at = Column(DateTime(timezone=True), nullable=False)
    points = Column(Integer, default=0, nullable=False)  # Derived, never client-supplied
    weather = Column(Text, nullable=True)  # JSON snapshot of weather at catch time
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", backref="catches")
    fish_species = relationship("FishSpecies")
    location = relationship("Location")
    tackle_item = relationship("TackleItem")

    __table_args__ = (
        CheckConstraint("weight IS NULL OR (weight > 0 AND weight < 1000)", name="ck_catches_weight"),
        CheckConstraint("length IS NULL OR (length > 0 AND length < 200)", name="ck_catches_length"),
        CheckConstraint("points >= 0", name="ck_catches_points"),
        Index("idx_catches_user_caught_at", "user_id", "caught_at"),
        Index("idx_catches_species", "fish_species_id"),
    )


class Competition(Base):
    """A scored contest over a time window."""

    __tablename__ = "competitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)
    metric = Column(String(20), nullable=False)
    target_species_id = Column(Integer, ForeignKey("fish_species.id"), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        String(20),
        default=CompetitionStatus.PENDING.value,
        nullable=False,
        server_default=CompetitionStatus.PENDING.value,
    )
    is_public = Column(Boolean, default=True, nullable=False)
    max_participants = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[creator_id])
    target_species = relationship("FishSpecies")
    participants = relationship(
        "CompetitionParticipant", back_populates="competition", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_competitions_window"),
        CheckConstraint(f"type IN ({_enum_values(CompetitionType)})", name="ck_competitions_type"),
        CheckConstraint(f"metric IN ({_enum_values(CompetitionMetric)})", name="ck_competitions_metric"),
        CheckConstraint(f"status IN ({_enum_values(CompetitionStatus)})", name="ck_competitions_status"),
        CheckConstraint(
            "max_participants IS NULL OR max_participants > 0", name="ck_competitions_max_participants"
        ),
        Index("idx_competitions_status", "status"),
        Index("idx_competitions_start_date", "start_date"),
    )


class CompetitionParticipant(Base):
    """A user's membership and running score within one competition."""

    __tablename__ = "competition_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    competition_id = Column(
        Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    score = Column(Float, default=0.0, nullable=False)
    catch_count = Column(Integer, default=0, nullable=False)
    best_catch_id = Column(Integer, ForeignKey("catches.id", ondelete="SET NULL"), nullable=True)
    rank = Column(Integer, nullable=True)  # Null until computed, null for zero-activity rows
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    competition = relationship("Competition", back_populates="participants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", name="uq_competition_participants_competition_user"),
        CheckConstraint("score >= 0", name="ck_competition_participants_score"),
        CheckConstraint("catch_count >= 0", name="ck_competition_participants_catch_count"),
        CheckConstraint("rank IS NULL OR rank > 0", name="ck_competition_participants_rank"),
        Index("idx_competition_participants_competition", "competition_id"),
        Index("idx_competition_participants_user", "user_id"),
    )


class CompetitionInvitation(Base):
    """Outstanding or resolved competition invitation."""

    __tablename__ = "competition_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    competition_id = Column(
        Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    inviter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invitee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        String(20),
        default=InvitationStatus.PENDING.value,
        nullable=False,
        server_default=InvitationStatus.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    competition = relationship("Competition")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_id])

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_enum_values(InvitationStatus)})", name="ck_competition_invitations_status"
        ),
        # At most one pending invitation per (competition, invitee)
        Index(
            "uq_competition_invitations_pending",
            "competition_id",
            "invitee_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_competition_invitations_invitee_status", "invitee_id", "status"),
    )


class Friendship(Base):
    """Directed friendship row; accepted rows count in both directions."""

    __tablename__ = "friendships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    friend_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(20), default=FriendshipStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendships_user_friend"),
        CheckConstraint("user_id <> friend_id", name="ck_friendships_not_self"),
        Index("idx_friendships_friend_status", "friend_id", "status"),
        Index("idx_friendships_user_status", "user_id", "status"),
    )


class LeaderboardCache(Base):
    """
    Materialized per-user aggregate over catches, partitioned by state.

    The empty-string state is the global partition. Rows are derived from
    catches only and are written by leaderboard_service alone.
    """

    __tablename__ = "leaderboard_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    state = Column(String, nullable=False, default="", server_default="")
    total_catches = Column(Integer, default=0, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    biggest_fish_weight = Column(Float, nullable=True)
    biggest_fish_length = Column(Float, nullable=True)
    first_catch_at = Column(DateTime(timezone=True), nullable=True)
    rank = Column(Integer, nullable=True)  # Points rank within the partition, set on rebuild
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "state", name="uq_leaderboard_cache_user_state"),
        CheckConstraint("total_catches >= 0", name="ck_leaderboard_cache_catches"),
        CheckConstraint("total_points >= 0", name="ck_leaderboard_cache_points"),
        Index("idx_leaderboard_cache_state_points", "state", "total_points"),
    )


class ScoreRecomputeJob(Base):
    """Queue of score/leaderboard recomputations that must be retried until they succeed."""

    __tablename__ = "score_recompute_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(String, nullable=False)  # ScoreJobType value
    competition_id = Column(
        Integer, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    status = Column(
        Enum(ScoreJobStatus, values_callable=lambda x: [e.value for e in x]),
        default=ScoreJobStatus.PENDING,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_score_recompute_jobs_status", "status"),
        Index("idx_score_recompute_jobs_key", "job_type", "competition_id", "user_id"),
        Index("idx_score_recompute_jobs_created_at", "created_at"),
    )


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, nullable=True)  # JSON string for flexible metadata (competition_id, ...)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
    )


class PushToken(Base):
    """Expo push tokens registered by a user's devices."""

    __tablename__ = "push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_push_tokens_user", "user_id"),)
