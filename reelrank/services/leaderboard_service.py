"""
Global, state and friends leaderboards.

Backed by the leaderboard_cache table, a materialized per-user aggregate of
catches partitioned by state ("" is the global partition). Refresh contract:

- The catch write path calls refresh_user_leaderboard for the catch's author
  right after the catch is committed, so authors read their own writes.
- If that refresh fails, a leaderboard_user job is queued and retried.
- The lifecycle worker runs rebuild_leaderboard_cache on an interval to
  reconcile anything that slipped through.

Nothing else writes to the cache, and ranks for a requested metric are
always computed at read time.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, delete, func, and_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database.models import Catch, CompetitionMetric, LeaderboardCache, User
from reelrank.services import friend_service
from reelrank.services.ranking_service import RankEntry, rank_entries, assign_ranks, timestamp_tiebreak
from reelrank.utils.constants import GLOBAL_LEADERBOARD_STATE, LEADERBOARD_LIMIT
from reelrank.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Cache column each metric ranks by; every CompetitionMetric member must be mapped
METRIC_COLUMNS = {
    CompetitionMetric.POINTS: "total_points",
    CompetitionMetric.CATCHES: "total_catches",
    CompetitionMetric.WEIGHT: "biggest_fish_weight",
    CompetitionMetric.LENGTH: "biggest_fish_length",
}


def _insert_for(session: AsyncSession):
    """Dialect-specific insert supporting ON CONFLICT upserts."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def _partitions_for(state: Optional[str]) -> List[str]:
    partitions = [GLOBAL_LEADERBOARD_STATE]
    if state:
        partitions.append(state)
    return partitions


def _aggregate_values(row) -> Dict:
    """Normalize an aggregate row, flooring totals at zero."""
    return {
        "total_catches": max(int(row.total_catches or 0), 0),
        "total_points": max(int(row.total_points or 0), 0),
        "biggest_fish_weight": row.biggest_fish_weight,
        "biggest_fish_length": row.biggest_fish_length,
        "first_catch_at": row.first_catch_at,
    }


def _aggregate_query():
    return select(
        Catch.user_id,
        func.count(Catch.id).label("total_catches"),
        func.coalesce(func.sum(Catch.points), 0).label("total_points"),
        func.max(Catch.weight).label("biggest_fish_weight"),
        func.max(Catch.length).label("biggest_fish_length"),
        func.min(Catch.caught_at).label("first_catch_at"),
    ).group_by(Catch.user_id)


async def _upsert_rows(session: AsyncSession, rows: Iterable[Dict]) -> None:
    insert = _insert_for(session)
    for values in rows:
        stmt = insert(LeaderboardCache).values(**values, updated_at=utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "state"],
            set_={
                "total_catches": stmt.excluded.total_catches,
                "total_points": stmt.excluded.total_points,
                "biggest_fish_weight": stmt.excluded.biggest_fish_weight,
                "biggest_fish_length": stmt.excluded.biggest_fish_length,
                "first_catch_at": stmt.excluded.first_catch_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await session.execute(stmt)


async def refresh_user_leaderboard(session: AsyncSession, user_id: int) -> Dict:
    """
    Recompute a user's leaderboard cache rows from their catches.

    Writes the global partition and the user's state partition, and drops
    rows left behind in partitions the user no longer belongs to.

    Args:
        session: Database session
        user_id: User whose rows to refresh

    Returns:
        Dict of the aggregated totals written
    """
    state_result = await session.execute(select(User.state).where(User.id == user_id))
    state = state_result.scalar_one_or_none()

    result = await session.execute(_aggregate_query().where(Catch.user_id == user_id))
    row = result.first()
    if row:
        totals = _aggregate_values(row)
    else:
        totals = {
            "total_catches": 0,
            "total_points": 0,
            "biggest_fish_weight": None,
            "biggest_fish_length": None,
            "first_catch_at": None,
        }

    partitions = _partitions_for(state)
    await _upsert_rows(
        session, [{"user_id": user_id, "state": partition, **totals} for partition in partitions]
    )
    await session.execute(
        delete(LeaderboardCache).where(
            and_(LeaderboardCache.user_id == user_id, LeaderboardCache.state.notin_(partitions))
        )
    )
    await session.flush()
    return totals


async def rebuild_leaderboard_cache(session: AsyncSession) -> Dict:
    """
    Rebuild the whole leaderboard cache from catches.

    Also stores each row's points rank within its partition.

    Returns:
        Dict with "user_count" and "row_count"
    """
    users_result = await session.execute(select(User.id, User.state))
    users = {row.id: row.state for row in users_result.all()}

    aggregates_result = await session.execute(_aggregate_query())
    aggregates = {row.user_id: _aggregate_values(row) for row in aggregates_result.all()}

    rows = []
    for user_id, state in users.items():
        totals = aggregates.get(user_id)
        if totals is None:
            totals = {
                "total_catches": 0,
                "total_points": 0,
                "biggest_fish_weight": None,
                "biggest_fish_length": None,
                "first_catch_at": None,
            }
        for partition in _partitions_for(state):
            rows.append({"user_id": user_id, "state": partition, **totals})

    await _upsert_rows(session, rows)

    # Drop rows for partitions users have moved out of
    valid = {(r["user_id"], r["state"]) for r in rows}
    existing = await session.execute(
        select(LeaderboardCache).execution_options(populate_existing=True)
    )
    cache_rows = existing.scalars().all()
    for cache_row in cache_rows:
        if (cache_row.user_id, cache_row.state) not in valid:
            await session.delete(cache_row)
    await session.flush()

    # Stored points rank per partition
    by_partition: Dict[str, List[LeaderboardCache]] = {}
    for cache_row in cache_rows:
        if (cache_row.user_id, cache_row.state) in valid:
            by_partition.setdefault(cache_row.state, []).append(cache_row)
    for partition_rows in by_partition.values():
        ranks = assign_ranks([_cache_rank_entry(r, CompetitionMetric.POINTS) for r in partition_rows])
        for cache_row in partition_rows:
            cache_row.rank = ranks[cache_row.user_id]
    await session.flush()

    logger.info(f"Rebuilt leaderboard cache: {len(users)} user(s), {len(rows)} row(s)")
    return {"user_count": len(users), "row_count": len(rows)}


def _cache_rank_entry(row: LeaderboardCache, metric: CompetitionMetric, payload=None) -> RankEntry:
    value = getattr(row, METRIC_COLUMNS[metric])
    return RankEntry(
        key=row.user_id,
        score=float(value or 0),
        activity=row.total_catches or 0,
        tiebreak=timestamp_tiebreak(row.first_catch_at, row.user_id),
        payload=payload,
    )


async def _ranked_view(
    session: AsyncSession,
    state: str,
    metric: str,
    user_ids: Optional[Iterable[int]] = None,
    limit: Optional[int] = None,
) -> List[Dict]:
    metric_enum = CompetitionMetric(metric)
    query = (
        select(LeaderboardCache, User)
        .join(User, User.id == LeaderboardCache.user_id)
        .where(LeaderboardCache.state == state)
        .execution_options(populate_existing=True)
    )
    if user_ids is not None:
        query = query.where(LeaderboardCache.user_id.in_(list(user_ids)))
    result = await session.execute(query)

    entries = [
        _cache_rank_entry(cache_row, metric_enum, payload=(cache_row, user))
        for cache_row, user in result.all()
    ]
    ranked = rank_entries(entries)
    if limit is not None:
        ranked = ranked[:limit]

    return [
        {
            "user_id": cache_row.user_id,
            "username": user.username,
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
            "total_catches": cache_row.total_catches,
            "total_points": cache_row.total_points,
            "biggest_fish_weight": cache_row.biggest_fish_weight,
            "biggest_fish_length": cache_row.biggest_fish_length,
            "rank": entry.rank,
        }
        for entry in ranked
        for cache_row, user in [entry.payload]
    ]


async def get_leaderboard(
    session: AsyncSession,
    state: Optional[str] = None,
    metric: str = CompetitionMetric.POINTS.value,
    limit: int = LEADERBOARD_LIMIT,
) -> List[Dict]:
    """
    Get the global or state leaderboard for a metric.

    Args:
        session: Database session
        state: State partition; None or "" for the global leaderboard
        metric: CompetitionMetric value to rank by
        limit: Maximum entries returned

    Returns:
        Ranked leaderboard entries (users without catches are excluded)
    """
    return await _ranked_view(session, state or GLOBAL_LEADERBOARD_STATE, metric, limit=limit)


async def get_friends_leaderboard(
    session: AsyncSession,
    user_id: int,
    metric: str = CompetitionMetric.POINTS.value,
) -> List[Dict]:
    """
    Get the leaderboard of a user and their accepted friends.

    Ranks are relative to this subset, not the stored global rank.
    """
    friend_ids = await friend_service.get_friend_ids(session, user_id)
    user_ids = {user_id} | friend_ids
    return await _ranked_view(session, GLOBAL_LEADERBOARD_STATE, metric, user_ids=user_ids)


async def get_user_rank(
    session: AsyncSession,
    user_id: int,
    state: Optional[str] = None,
    metric: str = CompetitionMetric.POINTS.value,
) -> Optional[Dict]:
    """
    Get a user's position on the global or state leaderboard.

    Returns:
        Dict with rank and totals, or None if the user has no cache row
    """
    partition = state or GLOBAL_LEADERBOARD_STATE
    result = await session.execute(
        select(LeaderboardCache).where(
            and_(LeaderboardCache.user_id == user_id, LeaderboardCache.state == partition)
        ).execution_options(populate_existing=True)
    )
    cache_row = result.scalar_one_or_none()
    if not cache_row:
        return None

    ranked = await _ranked_view(session, partition, metric)
    rank = next((entry["rank"] for entry in ranked if entry["user_id"] == user_id), None)
    return {
        "user_id": user_id,
        "state": partition,
        "rank": rank,
        "total_points": cache_row.total_points,
        "total_catches": cache_row.total_catches,
    }
