"""
Participant score aggregation.

Recomputes a participant's score, catch count and best catch from the
catches that fall inside a competition's window. Rows are always rebuilt
from current catch state and overwritten wholesale, so concurrent or
repeated recomputations converge on the same result.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import (
    Catch,
    Competition,
    CompetitionMetric,
    CompetitionParticipant,
    CompetitionStatus,
)
from reelrank.services import ranking_service
from reelrank.utils.datetime_utils import ensure_utc
from reelrank.utils.exceptions import CompetitionNotFoundError, NotAParticipantError

logger = logging.getLogger(__name__)

FROZEN_STATUSES = (CompetitionStatus.COMPLETED.value, CompetitionStatus.CANCELLED.value)


@dataclass(frozen=True)
class ScoreResult:
    """Aggregated standing for one participant."""

    score: float
    catch_count: int
    best_catch_id: Optional[int]


def _earliest_key(catch: Catch):
    return (ensure_utc(catch.caught_at), catch.id)


def _best_by(catches: Sequence[Catch], attribute: str) -> Optional[Catch]:
    """Catch with the highest non-null value of attribute; earliest wins ties."""
    measured = [c for c in catches if getattr(c, attribute) is not None]
    if not measured:
        return None
    return min(measured, key=lambda c: (-getattr(c, attribute), *_earliest_key(c)))


def _score_points(catches: Sequence[Catch]) -> ScoreResult:
    best = _best_by(catches, "points")
    return ScoreResult(
        score=float(sum(c.points or 0 for c in catches)),
        catch_count=len(catches),
        best_catch_id=best.id if best else None,
    )


def _score_catches(catches: Sequence[Catch]) -> ScoreResult:
    return ScoreResult(score=float(len(catches)), catch_count=len(catches), best_catch_id=None)


def _score_weight(catches: Sequence[Catch]) -> ScoreResult:
    best = _best_by(catches, "weight")
    return ScoreResult(
        score=float(best.weight) if best else 0.0,
        catch_count=len(catches),
        best_catch_id=best.id if best else None,
    )


def _score_length(catches: Sequence[Catch]) -> ScoreResult:
    best = _best_by(catches, "length")
    return ScoreResult(
        score=float(best.length) if best else 0.0,
        catch_count=len(catches),
        best_catch_id=best.id if best else None,
    )


# Every CompetitionMetric member must have a scorer
METRIC_SCORERS: Dict[CompetitionMetric, Callable[[Sequence[Catch]], ScoreResult]] = {
    CompetitionMetric.POINTS: _score_points,
    CompetitionMetric.CATCHES: _score_catches,
    CompetitionMetric.WEIGHT: _score_weight,
    CompetitionMetric.LENGTH: _score_length,
}


def compute_score(metric: str, catches: Sequence[Catch]) -> ScoreResult:
    """
    Compute a participant's standing from their qualifying catches.

    Args:
        metric: CompetitionMetric value
        catches: Catches already filtered to the competition window/species

    Returns:
        ScoreResult for the metric
    """
    return METRIC_SCORERS[CompetitionMetric(metric)](catches)


async def get_qualifying_catches(
    session: AsyncSession, competition: Competition, user_id: int
) -> List[Catch]:
    """
    Get a user's catches that count toward a competition.

    A catch qualifies when start_date <= caught_at <= end_date and, if the
    competition targets a species, it is of that species.
    """
    conditions = [
        Catch.user_id == user_id,
        Catch.caught_at >= ensure_utc(competition.start_date),
        Catch.caught_at <= ensure_utc(competition.end_date),
    ]
    if competition.target_species_id is not None:
        conditions.append(Catch.fish_species_id == competition.target_species_id)

    result = await session.execute(
        select(Catch).where(and_(*conditions)).order_by(Catch.caught_at.asc(), Catch.id.asc())
    )
    return list(result.scalars().all())


async def _get_competition(session: AsyncSession, competition_id: int) -> Competition:
    result = await session.execute(select(Competition).where(Competition.id == competition_id))
    competition = result.scalar_one_or_none()
    if not competition:
        raise CompetitionNotFoundError(competition_id)
    return competition


async def recompute_participant(
    session: AsyncSession,
    competition_id: int,
    user_id: int,
    force: bool = False,
    rerank: bool = True,
) -> CompetitionParticipant:
    """
    Rebuild one participant's score/catch_count/best_catch.

    Results of completed or cancelled competitions are frozen; the stored
    row is returned untouched unless force is set (used when a competition
    is being finalized).

    Args:
        session: Database session
        competition_id: Competition ID
        user_id: Participant's user ID
        force: Recompute even if the competition is closed
        rerank: Recompute ranks for the whole competition afterwards

    Returns:
        The updated participant row

    Raises:
        CompetitionNotFoundError: If the competition does not exist
        NotAParticipantError: If the user has not joined the competition
    """
    competition = await _get_competition(session, competition_id)

    result = await session.execute(
        select(CompetitionParticipant).where(
            and_(
                CompetitionParticipant.competition_id == competition_id,
                CompetitionParticipant.user_id == user_id,
            )
        )
    )
    participant = result.scalar_one_or_none()
    if not participant:
        raise NotAParticipantError()

    if competition.status in FROZEN_STATUSES and not force:
        logger.debug(
            f"Competition {competition_id} is {competition.status}; keeping frozen score for user {user_id}"
        )
        return participant

    catches = await get_qualifying_catches(session, competition, user_id)
    standing = compute_score(competition.metric, catches)

    participant.score = standing.score
    participant.catch_count = standing.catch_count
    participant.best_catch_id = standing.best_catch_id
    await session.flush()

    if rerank:
        await ranking_service.rank_competition(session, competition_id)

    return participant


async def recompute_competition(
    session: AsyncSession, competition_id: int, force: bool = False
) -> Dict:
    """
    Recompute every participant of a competition, then re-rank it.

    Each participant is committed on its own so one failure cannot undo or
    block the others. Failed participants are reported back for retry.

    Args:
        session: Database session
        competition_id: Competition ID
        force: Recompute even if the competition is closed

    Returns:
        Dict with "competition_id", "recomputed" count and "failed" user IDs
    """
    competition = await _get_competition(session, competition_id)
    if competition.status in FROZEN_STATUSES and not force:
        return {"competition_id": competition_id, "recomputed": 0, "failed": [], "frozen": True}

    result = await session.execute(
        select(CompetitionParticipant.user_id)
        .where(CompetitionParticipant.competition_id == competition_id)
        .order_by(CompetitionParticipant.user_id)
    )
    user_ids = list(result.scalars().all())

    recomputed = 0
    failed: List[int] = []
    for user_id in user_ids:
        try:
            await recompute_participant(session, competition_id, user_id, force=force, rerank=False)
            await session.commit()
            recomputed += 1
        except Exception as e:
            logger.error(
                f"Failed to recompute score for user {user_id} in competition {competition_id}: {e}",
                exc_info=True,
            )
            await session.rollback()
            failed.append(user_id)

    await ranking_service.rank_competition(session, competition_id)
    await session.commit()

    logger.info(
        f"Recomputed competition {competition_id}: {recomputed} participant(s), {len(failed)} failure(s)"
    )
    return {"competition_id": competition_id, "recomputed": recomputed, "failed": failed, "frozen": False}
