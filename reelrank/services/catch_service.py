"""
Catch logging and the scoring triggers that follow a catch write.

Points are always computed here from the catch measurements; a client
never supplies them. Every create/update/delete commits the catch first
and then:

1. Recomputes the author's standing in each open competition whose window
   contains the catch (old and new caught_at on edits).
2. Refreshes the author's leaderboard cache rows.

A failure in either step is rolled back on its own and queued as a
retry job; the committed catch is never undone.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import (
    Catch,
    Competition,
    CompetitionParticipant,
    CompetitionStatus,
    FishSpecies,
    Location,
    ScoreJobType,
    TackleItem,
)
from reelrank.services import leaderboard_service, score_service, weather_service
from reelrank.services.points_service import compute_points
from reelrank.services.score_queue import get_score_queue
from reelrank.utils.constants import MAX_LENGTH_IN, MAX_WEIGHT_LBS, SCORING_TIMEZONE
from reelrank.utils.datetime_utils import ensure_utc, isoformat_or_none, localize, utcnow
from reelrank.utils.exceptions import CatchNotFoundError, NotCatchOwnerError, ValidationError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "fish_species_id",
    "weight",
    "length",
    "caught_at",
    "tackle_item_id",
    "location_id",
    "notes",
)
POINTS_FIELDS = ("weight", "length", "caught_at")


def validate_measurements(weight: Optional[float], length: Optional[float]) -> None:
    """
    Check weight/length against physical bounds.

    Raises:
        ValidationError: If a present value is outside (0, max)
    """
    if weight is not None and not (0 < weight < MAX_WEIGHT_LBS):
        raise ValidationError(f"Weight must be between 0 and {MAX_WEIGHT_LBS} lbs")
    if length is not None and not (0 < length < MAX_LENGTH_IN):
        raise ValidationError(f"Length must be between 0 and {MAX_LENGTH_IN} inches")


def normalize_caught_at(caught_at: datetime) -> datetime:
    """
    Convert a catch time to aware UTC. Naive values are read in SCORING_TIMEZONE.

    Raises:
        ValidationError: If the catch time is in the future
    """
    caught_at = ensure_utc(localize(caught_at, SCORING_TIMEZONE))
    if caught_at > utcnow():
        raise ValidationError("Catch time cannot be in the future")
    return caught_at


async def _validate_references(session: AsyncSession, user_id: int, data: Dict) -> None:
    if "fish_species_id" in data:
        if data["fish_species_id"] is None:
            raise ValidationError("Fish species is required")
        result = await session.execute(
            select(FishSpecies.id).where(FishSpecies.id == data["fish_species_id"])
        )
        if result.scalar_one_or_none() is None:
            raise ValidationError(f"Fish species {data['fish_species_id']} not found")

    if data.get("tackle_item_id") is not None:
        result = await session.execute(
            select(TackleItem.user_id).where(TackleItem.id == data["tackle_item_id"])
        )
        owner_id = result.scalar_one_or_none()
        if owner_id != user_id:
            raise ValidationError(f"Tackle item {data['tackle_item_id']} not found")

    if data.get("location_id") is not None:
        result = await session.execute(
            select(Location.id).where(Location.id == data["location_id"])
        )
        if result.scalar_one_or_none() is None:
            raise ValidationError(f"Location {data['location_id']} not found")


async def _get_weather_snapshot(session: AsyncSession, location_id: Optional[int]) -> Optional[str]:
    """Weather at the catch location as JSON, None when unavailable."""
    if location_id is None:
        return None
    result = await session.execute(
        select(Location.latitude, Location.longitude).where(Location.id == location_id)
    )
    row = result.first()
    if not row or row.latitude is None or row.longitude is None:
        return None

    weather = await weather_service.get_weather_data(row.latitude, row.longitude)
    return weather.model_dump_json() if weather else None


def _format_catch(catch: Catch) -> Dict:
    return {
        "id": catch.id,
        "user_id": catch.user_id,
        "fish_species_id": catch.fish_species_id,
        "weight": catch.weight,
        "length": catch.length,
        "tackle_item_id": catch.tackle_item_id,
        "location_id": catch.location_id,
        "caught_at": isoformat_or_none(catch.caught_at),
        "points": catch.points,
        "weather": json.loads(catch.weather) if catch.weather else None,
        "notes": catch.notes,
        "created_at": isoformat_or_none(catch.created_at),
        "updated_at": isoformat_or_none(catch.updated_at),
    }


async def _get_owned_catch(session: AsyncSession, catch_id: int, user_id: int) -> Catch:
    result = await session.execute(select(Catch).where(Catch.id == catch_id))
    catch = result.scalar_one_or_none()
    if not catch:
        raise CatchNotFoundError(catch_id)
    if catch.user_id != user_id:
        raise NotCatchOwnerError()
    return catch


async def get_affected_competition_ids(
    session: AsyncSession, user_id: int, timestamps: Iterable[datetime]
) -> List[int]:
    """
    Open competitions the user has joined whose window contains any timestamp.
    """
    windows = [
        and_(Competition.start_date <= ts, Competition.end_date >= ts)
        for ts in {ensure_utc(t) for t in timestamps if t is not None}
    ]
    if not windows:
        return []

    result = await session.execute(
        select(Competition.id)
        .join(CompetitionParticipant, CompetitionParticipant.competition_id == Competition.id)
        .where(
            and_(
                CompetitionParticipant.user_id == user_id,
                Competition.status.in_(
                    [CompetitionStatus.PENDING.value, CompetitionStatus.ACTIVE.value]
                ),
                or_(*windows),
            )
        )
        .order_by(Competition.id)
    )
    return list(result.scalars().all())


async def apply_scoring_triggers(
    session: AsyncSession, user_id: int, timestamps: Iterable[datetime]
) -> Dict:
    """
    Recompute a user's competition standings and leaderboard rows after a
    committed catch write.

    Returns:
        Dict with "recomputed" competition IDs and "queued" job IDs
    """
    queue = get_score_queue()
    recomputed: List[int] = []
    queued: List[int] = []

    competition_ids = await get_affected_competition_ids(session, user_id, timestamps)
    for competition_id in competition_ids:
        try:
            await score_service.recompute_participant(session, competition_id, user_id)
            await session.commit()
            recomputed.append(competition_id)
        except Exception as e:
            logger.error(
                f"Failed to recompute user {user_id} in competition {competition_id}, queueing retry: {e}",
                exc_info=True,
            )
            await session.rollback()
            queued.append(
                await queue.enqueue(
                    session, ScoreJobType.PARTICIPANT.value, competition_id=competition_id, user_id=user_id
                )
            )

    try:
        await leaderboard_service.refresh_user_leaderboard(session, user_id)
        await session.commit()
    except Exception as e:
        logger.error(f"Failed to refresh leaderboard for user {user_id}, queueing retry: {e}", exc_info=True)
        await session.rollback()
        queued.append(await queue.enqueue(session, ScoreJobType.LEADERBOARD_USER.value, user_id=user_id))

    return {"recomputed": recomputed, "queued": queued}


async def create_catch(session: AsyncSession, user_id: int, data: Dict) -> Dict:
    """
    Log a catch.

    Args:
        session: Database session
        user_id: Angler logging the catch
        data: fish_species_id and optional weight, length, caught_at
            (defaults to now), tackle_item_id, location_id, notes. A
            "points" key is ignored.

    Returns:
        Dict with the created catch and the points bonuses applied

    Raises:
        ValidationError: On out-of-range measurements or unknown references
    """
    weight = data.get("weight")
    length = data.get("length")
    validate_measurements(weight, length)
    if data.get("fish_species_id") is None:
        raise ValidationError("Fish species is required")
    await _validate_references(session, user_id, data)

    caught_at = normalize_caught_at(data.get("caught_at") or utcnow())
    calculation = compute_points(
        weight=weight, length=length, caught_at=caught_at, tz=SCORING_TIMEZONE
    )

    catch = Catch(
        user_id=user_id,
        fish_species_id=data["fish_species_id"],
        weight=weight,
        length=length,
        tackle_item_id=data.get("tackle_item_id"),
        location_id=data.get("location_id"),
        caught_at=caught_at,
        points=calculation.points,
        weather=await _get_weather_snapshot(session, data.get("location_id")),
        notes=data.get("notes"),
    )
    session.add(catch)
    await session.commit()
    await session.refresh(catch)

    response = _format_catch(catch)
    response["bonuses"] = calculation.bonuses
    logger.info(f"User {user_id} logged catch {catch.id} worth {catch.points} points")

    await apply_scoring_triggers(session, user_id, [catch.caught_at])
    return response


async def update_catch(session: AsyncSession, catch_id: int, user_id: int, data: Dict) -> Dict:
    """
    Edit a catch owned by user_id and rescore it.

    Competitions containing either the old or the new caught_at are
    recomputed.

    Raises:
        CatchNotFoundError, NotCatchOwnerError, ValidationError
    """
    catch = await _get_owned_catch(session, catch_id, user_id)
    changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}

    if "caught_at" in changes and changes["caught_at"] is None:
        raise ValidationError("caught_at cannot be empty")
    weight = changes.get("weight", catch.weight)
    length = changes.get("length", catch.length)
    validate_measurements(weight, length)
    await _validate_references(session, user_id, changes)

    previous_caught_at = ensure_utc(catch.caught_at)
    if "caught_at" in changes:
        changes["caught_at"] = normalize_caught_at(changes["caught_at"])
    if any(key in changes for key in POINTS_FIELDS):
        caught_at = changes.get("caught_at", previous_caught_at)
        catch.points = compute_points(
            weight=weight, length=length, caught_at=caught_at, tz=SCORING_TIMEZONE
        ).points
    if "location_id" in changes and changes["location_id"] != catch.location_id:
        catch.weather = await _get_weather_snapshot(session, changes["location_id"])

    for key, value in changes.items():
        setattr(catch, key, value)
    catch.updated_at = utcnow()
    await session.commit()
    await session.refresh(catch)

    response = _format_catch(catch)
    await apply_scoring_triggers(session, user_id, [previous_caught_at, catch.caught_at])
    return response


async def delete_catch(session: AsyncSession, catch_id: int, user_id: int) -> None:
    """
    Delete a catch owned by user_id and rescore the competitions it counted in.

    Raises:
        CatchNotFoundError, NotCatchOwnerError
    """
    catch = await _get_owned_catch(session, catch_id, user_id)
    caught_at = ensure_utc(catch.caught_at)

    # Clear best-catch references before the row disappears
    participants = await session.execute(
        select(CompetitionParticipant).where(CompetitionParticipant.best_catch_id == catch_id)
    )
    for participant in participants.scalars().all():
        participant.best_catch_id = None

    await session.delete(catch)
    await session.commit()
    logger.info(f"User {user_id} deleted catch {catch_id}")

    await apply_scoring_triggers(session, user_id, [caught_at])


async def get_catch(session: AsyncSession, catch_id: int) -> Dict:
    """Get a single catch. Raises CatchNotFoundError."""
    result = await session.execute(select(Catch).where(Catch.id == catch_id))
    catch = result.scalar_one_or_none()
    if not catch:
        raise CatchNotFoundError(catch_id)
    return _format_catch(catch)


async def get_catches(
    session: AsyncSession,
    user_id: int,
    fish_species_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict]:
    """Get a user's catches, most recent first."""
    query = select(Catch).where(Catch.user_id == user_id)
    if fish_species_id is not None:
        query = query.where(Catch.fish_species_id == fish_species_id)
    result = await session.execute(
        query.order_by(Catch.caught_at.desc(), Catch.id.desc()).limit(limit).offset(offset)
    )
    return [_format_catch(c) for c in result.scalars().all()]
