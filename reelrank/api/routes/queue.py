"""Score recompute queue status route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import to_http_exception
from reelrank.database.db import get_db_session
from reelrank.models.schemas import QueueStatusResponse, ScoreJobResponse
from reelrank.services.score_queue import get_score_queue

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/score-queue/status", response_model=QueueStatusResponse)
async def get_queue_status(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Running, pending and recently finished recompute jobs."""
    try:
        return await get_score_queue().get_queue_status(session)
    except Exception as e:
        raise to_http_exception(e, "fetching queue status")


@router.get("/api/score-queue/jobs/{job_id}", response_model=ScoreJobResponse)
async def get_job_status(
    job_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Status of a single recompute job."""
    try:
        job = await get_score_queue().get_job_status(session, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job
    except Exception as e:
        raise to_http_exception(e, "fetching job status")
