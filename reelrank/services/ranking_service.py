"""
Leaderboard ranking.

Standard competition ranking ("1224" style): ties share a rank and the next
distinct score takes its 1-based position, so scores [100, 100, 80, 50]
rank [1, 1, 3, 4]. Higher scores are always better. Entries without any
qualifying activity are unranked and left out of the ordering.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

import pytz
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import CompetitionParticipant
from reelrank.utils.datetime_utils import ensure_utc

# Sorts missing timestamps after every real one
_LATEST = datetime.max.replace(tzinfo=pytz.UTC)


@dataclass
class RankEntry:
    """An entry to rank.

    Attributes:
        key: Identifier returned with the rank (participant id, user id, ...)
        score: Higher is better
        activity: Number of qualifying catches; 0 means unranked
        tiebreak: Ascending sort key applied between equal scores
        payload: Opaque data carried through to the result
    """

    key: Hashable
    score: float
    activity: int = 1
    tiebreak: Tuple = ()
    payload: Any = None


@dataclass
class RankedEntry:
    key: Hashable
    score: float
    rank: int
    payload: Any = None


def timestamp_tiebreak(timestamp: Optional[datetime], *rest) -> Tuple:
    """Build a tiebreak key where the earliest timestamp wins."""
    value = ensure_utc(timestamp) if timestamp is not None else _LATEST
    return (value, *rest)


def rank_entries(entries: Sequence[RankEntry]) -> List[RankedEntry]:
    """
    Rank entries by descending score.

    Args:
        entries: Entries to rank, in any order

    Returns:
        Ranked entries in leaderboard order. Zero-activity entries are excluded.
    """
    active = [e for e in entries if e.activity and e.activity > 0]
    ordered = sorted(active, key=lambda e: (-e.score, e.tiebreak))

    ranked: List[RankedEntry] = []
    previous_score = None
    current_rank = 0
    for position, entry in enumerate(ordered, start=1):
        if previous_score is None or entry.score < previous_score:
            current_rank = position
            previous_score = entry.score
        ranked.append(RankedEntry(key=entry.key, score=entry.score, rank=current_rank, payload=entry.payload))
    return ranked


def assign_ranks(entries: Sequence[RankEntry]) -> Dict[Hashable, Optional[int]]:
    """Map every entry key to its rank, None for unranked entries."""
    ranks: Dict[Hashable, Optional[int]] = {e.key: None for e in entries}
    for ranked in rank_entries(entries):
        ranks[ranked.key] = ranked.rank
    return ranks


def participant_rank_entry(participant: CompetitionParticipant) -> RankEntry:
    """Rank entry for a competition participant (earliest joiner wins ties)."""
    return RankEntry(
        key=participant.id,
        score=participant.score or 0.0,
        activity=participant.catch_count or 0,
        tiebreak=timestamp_tiebreak(participant.joined_at, participant.id),
        payload=participant,
    )


async def rank_competition(session: AsyncSession, competition_id: int) -> List[CompetitionParticipant]:
    """
    Recompute and store ranks for every participant of a competition.

    Participants with no qualifying catches get rank None.

    Args:
        session: Database session
        competition_id: Competition to rank

    Returns:
        Ranked participants in leaderboard order
    """
    result = await session.execute(
        select(CompetitionParticipant).where(CompetitionParticipant.competition_id == competition_id)
    )
    participants = result.scalars().all()

    entries = [participant_rank_entry(p) for p in participants]
    ranks = assign_ranks(entries)
    for participant in participants:
        participant.rank = ranks[participant.id]
    await session.flush()

    return [ranked.payload for ranked in rank_entries(entries)]
