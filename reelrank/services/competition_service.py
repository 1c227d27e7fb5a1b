"""
Competition registry: creation, membership, invitations and lifecycle.

Status machine:
    pending --(start reached)--> active --(end passed)--> completed
    pending/active --(cancel)--> cancelled
completed and cancelled are terminal. Wall-clock transitions are applied
on read (get_competition, join) and by the lifecycle worker through
advance_competition_statuses. Reaching completed finalizes the results:
every participant is recomputed one last time and the scores are frozen.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytz
from sqlalchemy import select, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import (
    Catch,
    Competition,
    CompetitionInvitation,
    CompetitionMetric,
    CompetitionParticipant,
    CompetitionStatus,
    CompetitionType,
    FishSpecies,
    InvitationStatus,
    NotificationType,
    ScoreJobType,
    User,
)
from reelrank.services import friend_service, notification_service, ranking_service, score_service
from reelrank.services.score_queue import get_score_queue
from reelrank.utils.constants import (
    COMPETITION_LEADERBOARD_LIMIT,
    MIN_MAX_PARTICIPANTS,
    SCORING_TIMEZONE,
)
from reelrank.utils.datetime_utils import ensure_utc, isoformat_or_none, utcnow
from reelrank.utils.exceptions import (
    AlreadyJoinedError,
    AlreadyResolvedError,
    CannotLeaveActiveError,
    CompetitionFullError,
    CompetitionNotFoundError,
    DuplicateInvitationError,
    InvalidStatusTransitionError,
    InvitationNotFoundError,
    JoinWindowClosedError,
    NotAParticipantError,
    NotCompetitionCreatorError,
    NotFoundError,
    NotInviteeError,
    StateError,
    ValidationError,
)
from reelrank.utils.formatting import format_score, get_metric_label

logger = logging.getLogger(__name__)

OPEN_STATUSES = (CompetitionStatus.PENDING.value, CompetitionStatus.ACTIVE.value)
CLOSED_STATUSES = (CompetitionStatus.COMPLETED.value, CompetitionStatus.CANCELLED.value)

# Fields that change which catches qualify or how they score
SCORING_FIELDS = ("start_date", "end_date", "metric", "target_species_id")
UPDATABLE_FIELDS = (
    "name",
    "description",
    "start_date",
    "end_date",
    "metric",
    "target_species_id",
    "is_public",
    "max_participants",
)


def get_competition_duration(
    competition_type: str, now: Optional[datetime] = None, tz_name: str = SCORING_TIMEZONE
) -> Tuple[datetime, datetime]:
    """
    Default window for a competition type, in the scoring timezone.

    - daily: today 00:00 to 23:59:59.999999
    - weekly: Sunday to Saturday of the current week
    - monthly: first to last day of the current month
    - yearly: January 1 to December 31

    Args:
        competition_type: CompetitionType value
        now: Reference time (defaults to the current time)
        tz_name: Timezone the calendar boundaries are taken in

    Returns:
        Tuple of (start, end) as aware UTC datetimes
    """
    competition_type = CompetitionType(competition_type)
    tz = pytz.timezone(tz_name)
    local_now = ensure_utc(now or utcnow()).astimezone(tz)
    today = local_now.date()

    if competition_type == CompetitionType.DAILY:
        first_day, last_day = today, today
    elif competition_type == CompetitionType.WEEKLY:
        # weekday() is Monday=0; weeks start on Sunday
        first_day = today - timedelta(days=(today.weekday() + 1) % 7)
        last_day = first_day + timedelta(days=6)
    elif competition_type == CompetitionType.MONTHLY:
        first_day = today.replace(day=1)
        last_day = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    else:
        first_day = today.replace(month=1, day=1)
        last_day = today.replace(month=12, day=31)

    start = tz.localize(datetime.combine(first_day, datetime.min.time()))
    end = tz.localize(datetime.combine(last_day, datetime.max.time()))
    return ensure_utc(start), ensure_utc(end)


def _status_for(start_date: datetime, end_date: datetime, now: datetime) -> str:
    if now < ensure_utc(start_date):
        return CompetitionStatus.PENDING.value
    if now <= ensure_utc(end_date):
        return CompetitionStatus.ACTIVE.value
    return CompetitionStatus.COMPLETED.value


def _format_competition(competition: Competition, participants_count: Optional[int] = None) -> Dict:
    return {
        "id": competition.id,
        "creator_id": competition.creator_id,
        "name": competition.name,
        "description": competition.description,
        "type": competition.type,
        "metric": competition.metric,
        "metric_label": get_metric_label(competition.metric),
        "target_species_id": competition.target_species_id,
        "start_date": isoformat_or_none(competition.start_date),
        "end_date": isoformat_or_none(competition.end_date),
        "status": competition.status,
        "is_public": competition.is_public,
        "max_participants": competition.max_participants,
        "participants_count": participants_count,
        "created_at": isoformat_or_none(competition.created_at),
    }


async def _get_competition_row(
    session: AsyncSession, competition_id: int, for_update: bool = False
) -> Competition:
    query = select(Competition).where(Competition.id == competition_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    competition = result.scalar_one_or_none()
    if not competition:
        raise CompetitionNotFoundError(competition_id)
    return competition


async def _get_participant(
    session: AsyncSession, competition_id: int, user_id: int
) -> Optional[CompetitionParticipant]:
    result = await session.execute(
        select(CompetitionParticipant).where(
            and_(
                CompetitionParticipant.competition_id == competition_id,
                CompetitionParticipant.user_id == user_id,
            )
        )
    )
    return result.scalar_one_or_none()


async def _count_participants(session: AsyncSession, competition_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(CompetitionParticipant)
        .where(CompetitionParticipant.competition_id == competition_id)
    )
    return result.scalar() or 0


async def _validate_species(session: AsyncSession, species_id: Optional[int]) -> None:
    if species_id is None:
        return
    result = await session.execute(select(FishSpecies.id).where(FishSpecies.id == species_id))
    if result.scalar_one_or_none() is None:
        raise ValidationError(f"Fish species {species_id} not found")


def _validate_max_participants(max_participants: Optional[int]) -> None:
    if max_participants is not None and max_participants < MIN_MAX_PARTICIPANTS:
        raise ValidationError(f"max_participants must be at least {MIN_MAX_PARTICIPANTS}")


def _validate_window(start_date: datetime, end_date: datetime) -> None:
    if ensure_utc(start_date) >= ensure_utc(end_date):
        raise ValidationError("Competition start date must be before its end date")


async def create_competition(session: AsyncSession, creator_id: int, data: Dict) -> Dict:
    """
    Create a competition and enroll its creator as the first participant.

    Args:
        session: Database session
        creator_id: User creating the competition
        data: name, type, metric and optional description, target_species_id,
            start_date, end_date (both default from type), is_public,
            max_participants

    Returns:
        Dict with the created competition

    Raises:
        ValidationError: On invalid name, type, metric, window or cap
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Competition name is required")
    if len(name) > 100:
        raise ValidationError("Competition name must be 100 characters or fewer")

    try:
        competition_type = CompetitionType(data.get("type"))
    except ValueError:
        raise ValidationError(f"Invalid competition type: {data.get('type')}")
    try:
        metric = CompetitionMetric(data.get("metric"))
    except ValueError:
        raise ValidationError(f"Invalid competition metric: {data.get('metric')}")

    now = utcnow()
    default_start, default_end = get_competition_duration(competition_type.value, now)
    start_date = ensure_utc(data.get("start_date")) or default_start
    end_date = ensure_utc(data.get("end_date")) or default_end
    _validate_window(start_date, end_date)
    if end_date <= now:
        raise ValidationError("Competition end date must be in the future")

    max_participants = data.get("max_participants")
    _validate_max_participants(max_participants)
    await _validate_species(session, data.get("target_species_id"))

    competition = Competition(
        creator_id=creator_id,
        name=name,
        description=data.get("description"),
        type=competition_type.value,
        metric=metric.value,
        target_species_id=data.get("target_species_id"),
        start_date=start_date,
        end_date=end_date,
        status=_status_for(start_date, end_date, now),
        is_public=data.get("is_public", True),
        max_participants=max_participants,
    )
    session.add(competition)
    await session.flush()

    session.add(
        CompetitionParticipant(
            competition_id=competition.id,
            user_id=creator_id,
            score=0.0,
            catch_count=0,
            joined_at=now,
        )
    )
    await session.flush()

    if competition.status == CompetitionStatus.ACTIVE.value:
        await score_service.recompute_participant(session, competition.id, creator_id)

    logger.info(
        f"User {creator_id} created {competition.type} competition {competition.id} ({competition.status})"
    )
    return _format_competition(competition, participants_count=1)


async def join_competition(session: AsyncSession, competition_id: int, user_id: int) -> Dict:
    """
    Join a competition.

    The competition row is locked while the duplicate and capacity checks
    run; the (competition_id, user_id) unique constraint backs them up.
    Joining an active competition immediately counts catches already made
    inside its window.

    Returns:
        Dict with the participant row

    Raises:
        CompetitionNotFoundError, JoinWindowClosedError, AlreadyJoinedError,
        CompetitionFullError
    """
    competition = await _get_competition_row(session, competition_id, for_update=True)
    await refresh_competition_status(session, competition)

    if competition.status in CLOSED_STATUSES:
        raise JoinWindowClosedError(competition.status)

    if await _get_participant(session, competition_id, user_id):
        raise AlreadyJoinedError()

    if competition.max_participants is not None:
        count = await _count_participants(session, competition_id)
        if count >= competition.max_participants:
            raise CompetitionFullError(competition.max_participants)

    participant = CompetitionParticipant(
        competition_id=competition_id,
        user_id=user_id,
        score=0.0,
        catch_count=0,
        joined_at=utcnow(),
    )
    session.add(participant)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AlreadyJoinedError()

    if competition.status == CompetitionStatus.ACTIVE.value:
        participant = await score_service.recompute_participant(session, competition_id, user_id)

    logger.info(f"User {user_id} joined competition {competition_id}")
    return _format_participant(participant)


async def leave_competition(session: AsyncSession, competition_id: int, user_id: int) -> None:
    """
    Leave a competition before it starts.

    Raises:
        CannotLeaveActiveError: Unless the competition is still pending
        NotAParticipantError: If the user has not joined
    """
    competition = await _get_competition_row(session, competition_id)
    await refresh_competition_status(session, competition)
    if competition.status != CompetitionStatus.PENDING.value:
        raise CannotLeaveActiveError(competition.status)

    participant = await _get_participant(session, competition_id, user_id)
    if not participant:
        raise NotAParticipantError()

    await session.delete(participant)
    await session.flush()
    logger.info(f"User {user_id} left competition {competition_id}")


async def invite_to_competition(
    session: AsyncSession, competition_id: int, inviter_id: int, invitee_id: int
) -> Dict:
    """
    Invite a user to a competition. The inviter must be a participant.

    Raises:
        CompetitionNotFoundError, NotFoundError (invitee), NotAParticipantError,
        JoinWindowClosedError, AlreadyJoinedError, DuplicateInvitationError
    """
    competition = await _get_competition_row(session, competition_id)
    await refresh_competition_status(session, competition)

    if not await _get_participant(session, competition_id, inviter_id):
        raise NotAParticipantError()
    if competition.status in CLOSED_STATUSES:
        raise JoinWindowClosedError(competition.status)

    invitee = await session.execute(select(User.id).where(User.id == invitee_id))
    if invitee.scalar_one_or_none() is None:
        raise NotFoundError(f"User {invitee_id} not found")
    if await _get_participant(session, competition_id, invitee_id):
        raise AlreadyJoinedError()

    result = await session.execute(
        select(CompetitionInvitation.id).where(
            and_(
                CompetitionInvitation.competition_id == competition_id,
                CompetitionInvitation.invitee_id == invitee_id,
                CompetitionInvitation.status == InvitationStatus.PENDING.value,
            )
        )
    )
    if result.scalar_one_or_none() is not None:
        raise DuplicateInvitationError()

    invitation = CompetitionInvitation(
        competition_id=competition_id,
        inviter_id=inviter_id,
        invitee_id=invitee_id,
        status=InvitationStatus.PENDING.value,
        created_at=utcnow(),
    )
    session.add(invitation)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise DuplicateInvitationError()

    inviter_name = await friend_service.get_display_name(session, inviter_id)
    await notification_service.create_notification(
        session=session,
        user_id=invitee_id,
        type=NotificationType.COMPETITION_INVITE.value,
        title="Competition Invite",
        message=f"{inviter_name} invited you to join {competition.name}",
        data={"competition_id": competition_id, "invitation_id": invitation.id},
    )

    return _format_invitation(invitation)


async def respond_to_invitation(
    session: AsyncSession, invitation_id: int, accept: bool, user_id: int
) -> Dict:
    """
    Accept or decline an invitation.

    Accepting joins the competition in the same transaction, so a failed
    join (full, closed) leaves the invitation pending once the caller
    rolls back.

    Raises:
        InvitationNotFoundError, NotInviteeError, AlreadyResolvedError, plus
        any join error when accepting
    """
    result = await session.execute(
        select(CompetitionInvitation)
        .where(CompetitionInvitation.id == invitation_id)
        .with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise InvitationNotFoundError(invitation_id)
    if invitation.invitee_id != user_id:
        raise NotInviteeError()
    if invitation.status != InvitationStatus.PENDING.value:
        raise AlreadyResolvedError(invitation.status)

    invitation.status = (InvitationStatus.ACCEPTED if accept else InvitationStatus.DECLINED).value
    invitation.responded_at = utcnow()
    await session.flush()

    response = _format_invitation(invitation)
    if not accept:
        return response

    response["participant"] = await join_competition(session, invitation.competition_id, user_id)

    invitee_name = await friend_service.get_display_name(session, user_id)
    await notification_service.create_notification(
        session=session,
        user_id=invitation.inviter_id,
        type=NotificationType.COMPETITION_UPDATE.value,
        title="Invitation Accepted",
        message=f"{invitee_name} accepted your competition invitation",
        data={"competition_id": invitation.competition_id},
    )

    return response


async def cancel_competition(session: AsyncSession, competition_id: int, user_id: int) -> Dict:
    """
    Cancel a pending or active competition. Scores are frozen as they stand.

    Raises:
        NotCompetitionCreatorError: If user_id is not the creator
        InvalidStatusTransitionError: If the competition already ended
    """
    competition = await _get_competition_row(session, competition_id, for_update=True)
    if competition.creator_id != user_id:
        raise NotCompetitionCreatorError()

    await refresh_competition_status(session, competition)
    if competition.status not in OPEN_STATUSES:
        raise InvalidStatusTransitionError(competition.status, CompetitionStatus.CANCELLED.value)

    competition.status = CompetitionStatus.CANCELLED.value
    await session.flush()
    logger.info(f"Competition {competition_id} cancelled by user {user_id}")
    return _format_competition(competition, await _count_participants(session, competition_id))


async def update_competition(
    session: AsyncSession, competition_id: int, user_id: int, data: Dict
) -> Dict:
    """
    Update a pending or active competition. Creator only.

    Changing the window, metric or species filter commits the update and
    then recomputes every participant; participants that fail are queued
    for retry.

    Raises:
        NotCompetitionCreatorError, StateError, ValidationError
    """
    competition = await _get_competition_row(session, competition_id, for_update=True)
    if competition.creator_id != user_id:
        raise NotCompetitionCreatorError()

    await refresh_competition_status(session, competition)
    if competition.status not in OPEN_STATUSES:
        raise StateError(f"Cannot update a {competition.status} competition")

    changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise ValidationError("Competition name is required")
        if len(changes["name"]) > 100:
            raise ValidationError("Competition name must be 100 characters or fewer")
    if "metric" in changes:
        try:
            changes["metric"] = CompetitionMetric(changes["metric"]).value
        except ValueError:
            raise ValidationError(f"Invalid competition metric: {changes['metric']}")
    for key in ("start_date", "end_date"):
        if key in changes:
            if changes[key] is None:
                raise ValidationError(f"{key} cannot be empty")
            changes[key] = ensure_utc(changes[key])
    if "max_participants" in changes:
        _validate_max_participants(changes["max_participants"])
        if changes["max_participants"] is not None:
            count = await _count_participants(session, competition_id)
            if changes["max_participants"] < count:
                raise ValidationError(
                    f"max_participants cannot be below the current {count} participant(s)"
                )
    if "target_species_id" in changes:
        await _validate_species(session, changes["target_species_id"])

    _validate_window(
        changes.get("start_date", competition.start_date),
        changes.get("end_date", competition.end_date),
    )

    scoring_changed = any(
        key in changes and changes[key] != _comparable(getattr(competition, key))
        for key in SCORING_FIELDS
    )
    for key, value in changes.items():
        setattr(competition, key, value)
    competition.updated_at = utcnow()

    # Moving the window can move the competition along the status machine
    now = utcnow()
    if competition.status == CompetitionStatus.PENDING.value:
        competition.status = _status_for(competition.start_date, competition.end_date, now)
        if competition.status == CompetitionStatus.COMPLETED.value:
            raise ValidationError("Competition end date must be in the future")
    elif now > ensure_utc(competition.end_date):
        raise ValidationError("Competition end date must be in the future")
    await session.flush()

    if scoring_changed:
        await session.commit()
        result = await score_service.recompute_competition(session, competition_id)
        queue = get_score_queue()
        for failed_user_id in result["failed"]:
            await queue.enqueue(
                session, ScoreJobType.PARTICIPANT.value, competition_id=competition_id, user_id=failed_user_id
            )
        competition = await _get_competition_row(session, competition_id)

    return _format_competition(competition, await _count_participants(session, competition_id))


def _comparable(value):
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


async def refresh_competition_status(
    session: AsyncSession, competition: Competition, now: Optional[datetime] = None
) -> bool:
    """
    Apply wall-clock status transitions to a competition.

    Reaching completed finalizes the competition: participants are
    recomputed with force, re-ranked and notified of their placement.
    Changes are flushed, not committed.

    Returns:
        True if the status changed
    """
    if competition.status in CLOSED_STATUSES:
        return False

    now = now or utcnow()
    target = _status_for(competition.start_date, competition.end_date, now)
    if target == competition.status:
        return False

    previous = competition.status
    competition.status = target
    await session.flush()
    logger.info(f"Competition {competition.id} moved from {previous} to {target}")

    if target == CompetitionStatus.COMPLETED.value:
        await _finalize_competition(session, competition)
    return True


async def _finalize_competition(session: AsyncSession, competition: Competition) -> None:
    """Last recompute of every participant, then notify final placements."""
    result = await session.execute(
        select(CompetitionParticipant.user_id).where(
            CompetitionParticipant.competition_id == competition.id
        )
    )
    user_ids = list(result.scalars().all())
    for user_id in user_ids:
        await score_service.recompute_participant(
            session, competition.id, user_id, force=True, rerank=False
        )
    ranked = await ranking_service.rank_competition(session, competition.id)
    ranks = {p.user_id: (p.rank, p.score) for p in ranked}

    for user_id in user_ids:
        placement = ranks.get(user_id)
        if placement:
            message = (
                f"{competition.name} has ended. You finished #{placement[0]} "
                f"with {format_score(placement[1], competition.metric)}"
            )
        else:
            message = f"{competition.name} has ended"
        await notification_service.create_notification(
            session=session,
            user_id=user_id,
            type=NotificationType.COMPETITION_UPDATE.value,
            title="Competition Complete",
            message=message,
            data={"competition_id": competition.id},
        )


async def advance_competition_statuses(session: AsyncSession, now: Optional[datetime] = None) -> Dict:
    """
    Apply due status transitions to every open competition.

    Each competition is committed on its own; a failure is rolled back,
    logged, and retried on the next run.

    Returns:
        Dict with "activated", "completed" and "failed" counts
    """
    now = now or utcnow()
    result = await session.execute(
        select(Competition.id).where(
            or_(
                and_(
                    Competition.status == CompetitionStatus.PENDING.value,
                    Competition.start_date <= now,
                ),
                and_(
                    Competition.status == CompetitionStatus.ACTIVE.value,
                    Competition.end_date < now,
                ),
            )
        )
    )
    competition_ids = list(result.scalars().all())

    counts = {"activated": 0, "completed": 0, "failed": 0}
    for competition_id in competition_ids:
        try:
            competition = await _get_competition_row(session, competition_id, for_update=True)
            changed = await refresh_competition_status(session, competition, now)
            status = competition.status
            await session.commit()
            if changed and status == CompetitionStatus.ACTIVE.value:
                counts["activated"] += 1
            elif changed and status == CompetitionStatus.COMPLETED.value:
                counts["completed"] += 1
        except Exception as e:
            logger.error(f"Error advancing competition {competition_id}: {e}", exc_info=True)
            await session.rollback()
            counts["failed"] += 1

    return counts


async def get_competition(
    session: AsyncSession, competition_id: int, user_id: Optional[int] = None
) -> Dict:
    """
    Get a competition, applying any due status transition first.

    Private competitions are only visible to their creator, participants
    and invitees when user_id is given.

    Raises:
        CompetitionNotFoundError
    """
    competition = await _get_competition_row(session, competition_id)
    if user_id is not None and not competition.is_public and competition.creator_id != user_id:
        participant = await _get_participant(session, competition_id, user_id)
        invited = await session.execute(
            select(CompetitionInvitation.id).where(
                and_(
                    CompetitionInvitation.competition_id == competition_id,
                    CompetitionInvitation.invitee_id == user_id,
                )
            )
        )
        if not participant and invited.first() is None:
            raise CompetitionNotFoundError(competition_id)

    await refresh_competition_status(session, competition)
    return _format_competition(competition, await _count_participants(session, competition_id))


async def get_competitions(
    session: AsyncSession,
    user_id: int,
    status: Optional[str] = None,
    type: Optional[str] = None,
    participating: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict]:
    """
    List competitions visible to a user, newest start first.

    Visible means public, created by the user, or joined by the user.

    Args:
        session: Database session
        user_id: Viewing user
        status: Optional CompetitionStatus filter
        type: Optional CompetitionType filter
        participating: Only competitions the user has joined

    Returns:
        List of competition dicts with participants_count
    """
    joined = select(CompetitionParticipant.competition_id).where(
        CompetitionParticipant.user_id == user_id
    )
    if participating:
        query = select(Competition).where(Competition.id.in_(joined))
    else:
        query = select(Competition).where(
            or_(
                Competition.is_public.is_(True),
                Competition.creator_id == user_id,
                Competition.id.in_(joined),
            )
        )
    if status:
        query = query.where(Competition.status == CompetitionStatus(status).value)
    if type:
        query = query.where(Competition.type == CompetitionType(type).value)

    result = await session.execute(
        query.order_by(Competition.start_date.desc(), Competition.id.desc()).limit(limit).offset(offset)
    )
    competitions = result.scalars().all()
    if not competitions:
        return []

    ids = [c.id for c in competitions]
    counts_result = await session.execute(
        select(CompetitionParticipant.competition_id, func.count(CompetitionParticipant.id))
        .where(CompetitionParticipant.competition_id.in_(ids))
        .group_by(CompetitionParticipant.competition_id)
    )
    counts = dict(counts_result.all())
    return [_format_competition(c, counts.get(c.id, 0)) for c in competitions]


def _format_participant(participant: CompetitionParticipant) -> Dict:
    return {
        "id": participant.id,
        "competition_id": participant.competition_id,
        "user_id": participant.user_id,
        "score": participant.score,
        "catch_count": participant.catch_count,
        "best_catch_id": participant.best_catch_id,
        "rank": participant.rank,
        "joined_at": isoformat_or_none(participant.joined_at),
    }


def _format_invitation(invitation: CompetitionInvitation) -> Dict:
    return {
        "id": invitation.id,
        "competition_id": invitation.competition_id,
        "inviter_id": invitation.inviter_id,
        "invitee_id": invitation.invitee_id,
        "status": invitation.status,
        "created_at": isoformat_or_none(invitation.created_at),
        "responded_at": isoformat_or_none(invitation.responded_at),
    }


async def get_competition_leaderboard(
    session: AsyncSession, competition_id: int, limit: int = COMPETITION_LEADERBOARD_LIMIT
) -> List[Dict]:
    """
    Ranked participants of a competition, best first.

    Participants without a qualifying catch have no rank and are omitted.
    """
    competition = await _get_competition_row(session, competition_id)

    result = await session.execute(
        select(CompetitionParticipant, User, Catch)
        .join(User, User.id == CompetitionParticipant.user_id)
        .outerjoin(Catch, Catch.id == CompetitionParticipant.best_catch_id)
        .where(
            and_(
                CompetitionParticipant.competition_id == competition_id,
                CompetitionParticipant.rank.isnot(None),
            )
        )
        .order_by(
            CompetitionParticipant.rank.asc(),
            CompetitionParticipant.joined_at.asc(),
            CompetitionParticipant.id.asc(),
        )
        .limit(limit)
    )

    leaderboard = []
    for participant, user, best_catch in result.all():
        leaderboard.append(
            {
                "participant_id": participant.id,
                "user_id": user.id,
                "username": user.username,
                "display_name": user.display_name,
                "avatar_url": user.avatar_url,
                "score": participant.score,
                "formatted_score": format_score(participant.score, competition.metric),
                "catch_count": participant.catch_count,
                "rank": participant.rank,
                "best_catch": {
                    "id": best_catch.id,
                    "fish_species_id": best_catch.fish_species_id,
                    "weight": best_catch.weight,
                    "length": best_catch.length,
                    "points": best_catch.points,
                    "caught_at": isoformat_or_none(best_catch.caught_at),
                }
                if best_catch
                else None,
            }
        )
    return leaderboard


async def get_user_competition_rank(
    session: AsyncSession, competition_id: int, user_id: int
) -> Optional[Dict]:
    """A user's standing in a competition, or None if they have not joined."""
    participant = await _get_participant(session, competition_id, user_id)
    if not participant:
        return None

    ranked_result = await session.execute(
        select(func.count())
        .select_from(CompetitionParticipant)
        .where(
            and_(
                CompetitionParticipant.competition_id == competition_id,
                CompetitionParticipant.rank.isnot(None),
            )
        )
    )
    return {
        "competition_id": competition_id,
        "user_id": user_id,
        "rank": participant.rank,
        "score": participant.score,
        "catch_count": participant.catch_count,
        "total_ranked": ranked_result.scalar() or 0,
    }


async def get_pending_invitations(session: AsyncSession, user_id: int) -> List[Dict]:
    """Pending invitations addressed to a user for competitions still open."""
    result = await session.execute(
        select(CompetitionInvitation, Competition, User)
        .join(Competition, Competition.id == CompetitionInvitation.competition_id)
        .join(User, User.id == CompetitionInvitation.inviter_id)
        .where(
            and_(
                CompetitionInvitation.invitee_id == user_id,
                CompetitionInvitation.status == InvitationStatus.PENDING.value,
                Competition.status.in_(OPEN_STATUSES),
            )
        )
        .order_by(CompetitionInvitation.created_at.desc(), CompetitionInvitation.id.desc())
    )
    return [
        {
            **_format_invitation(invitation),
            "competition": _format_competition(competition),
            "inviter_name": inviter.display_name or inviter.username,
        }
        for invitation, competition, inviter in result.all()
    ]
