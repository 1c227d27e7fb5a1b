"""Global, state and friends leaderboard route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import to_http_exception
from reelrank.database.db import get_db_session
from reelrank.database.models import CompetitionMetric
from reelrank.models.schemas import LeaderboardEntry, UserRankResponse
from reelrank.services import leaderboard_service
from reelrank.utils.constants import LEADERBOARD_LIMIT

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    state: Optional[str] = None,
    metric: CompetitionMetric = CompetitionMetric.POINTS,
    limit: int = Query(LEADERBOARD_LIMIT, ge=1, le=500),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Global leaderboard, or a state's when state is given."""
    try:
        return await leaderboard_service.get_leaderboard(
            session, state=state, metric=metric.value, limit=limit
        )
    except Exception as e:
        raise to_http_exception(e, "fetching leaderboard")


@router.get("/api/leaderboard/friends", response_model=List[LeaderboardEntry])
async def get_friends_leaderboard(
    metric: CompetitionMetric = CompetitionMetric.POINTS,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leaderboard of the caller and their friends."""
    try:
        return await leaderboard_service.get_friends_leaderboard(session, user["id"], metric=metric.value)
    except Exception as e:
        raise to_http_exception(e, "fetching friends leaderboard")


@router.get("/api/leaderboard/me", response_model=UserRankResponse)
async def get_my_rank(
    state: Optional[str] = None,
    metric: CompetitionMetric = CompetitionMetric.POINTS,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's rank on the global or a state leaderboard."""
    try:
        result = await leaderboard_service.get_user_rank(session, user["id"], state=state, metric=metric.value)
        if result is None:
            raise HTTPException(status_code=404, detail="No leaderboard entry for this user")
        return result
    except Exception as e:
        raise to_http_exception(e, "fetching leaderboard rank")
