"""
Score recomputation retry queue with deduplication.

Recomputations that fail after a catch or competition write has already
been committed are recorded here and retried until they succeed:
- Deduplicates requests for the same (job_type, competition_id, user_id)
- Persists across server restarts
- Retries standings jobs with capped exponential backoff until they succeed
- Marks leaderboard jobs failed after max attempts (the hourly rebuild
  reconciles the cache)
- Tracks job status
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.database import db
from reelrank.database.models import ScoreJobStatus, ScoreJobType, ScoreRecomputeJob
from reelrank.utils.constants import SCORE_JOB_BACKOFF_SECONDS, SCORE_JOB_MAX_ATTEMPTS
from reelrank.utils.datetime_utils import utcnow, isoformat_or_none

logger = logging.getLogger(__name__)

# How long the worker waits when there is nothing due (seconds)
POLL_INTERVAL_SECONDS = 1

JobHandler = Callable[[AsyncSession, ScoreRecomputeJob], Awaitable[Optional[Dict]]]

# Job types that stay pending past max_attempts
RETRY_FOREVER_JOB_TYPES = (ScoreJobType.PARTICIPANT.value, ScoreJobType.COMPETITION.value)


def backoff_delay(attempts: int) -> timedelta:
    """Delay before the next attempt after `attempts` failures."""
    return timedelta(seconds=SCORE_JOB_BACKOFF_SECONDS * (2 ** max(attempts - 1, 0)))


class ScoreRecomputeQueue:
    """Database-backed queue for score and leaderboard recomputation jobs."""

    def __init__(self, max_attempts: int = SCORE_JOB_MAX_ATTEMPTS):
        self.max_attempts = max_attempts
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._handlers: Dict[str, JobHandler] = {}

    async def enqueue(
        self,
        session: AsyncSession,
        job_type: str,
        competition_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> int:
        """
        Enqueue a recomputation job.

        Deduplication logic:
        - If the same key is already pending, return that job's id
        - If it is only running, queue one more pending job so the rerun
          sees writes made after the running job started

        Args:
            session: Database session (committed by this call)
            job_type: ScoreJobType value
            competition_id: Competition for participant/competition jobs
            user_id: User for participant/leaderboard_user jobs

        Returns:
            Job ID
        """
        job_type = ScoreJobType(job_type).value

        existing = await self._find_pending_job(session, job_type, competition_id, user_id)
        if existing:
            return existing.id

        job = ScoreRecomputeJob(
            job_type=job_type,
            competition_id=competition_id,
            user_id=user_id,
            status=ScoreJobStatus.PENDING,
            attempts=0,
            next_attempt_at=utcnow(),
        )
        session.add(job)
        await session.commit()
        await session.refresh(job)
        logger.info(
            f"Queued {job_type} recompute job {job.id} "
            f"(competition={competition_id}, user={user_id})"
        )
        return job.id

    async def _find_pending_job(
        self,
        session: AsyncSession,
        job_type: str,
        competition_id: Optional[int],
        user_id: Optional[int],
    ) -> Optional[ScoreRecomputeJob]:
        """Find a pending job with the same key."""
        conditions = [
            ScoreRecomputeJob.job_type == job_type,
            ScoreRecomputeJob.status == ScoreJobStatus.PENDING,
        ]
        if competition_id is None:
            conditions.append(ScoreRecomputeJob.competition_id.is_(None))
        else:
            conditions.append(ScoreRecomputeJob.competition_id == competition_id)
        if user_id is None:
            conditions.append(ScoreRecomputeJob.user_id.is_(None))
        else:
            conditions.append(ScoreRecomputeJob.user_id == user_id)

        result = await session.execute(
            select(ScoreRecomputeJob)
            .where(and_(*conditions))
            .order_by(ScoreRecomputeJob.created_at.asc(), ScoreRecomputeJob.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_due_job_ids(self, session: AsyncSession, limit: Optional[int] = None) -> List[int]:
        """Pending jobs whose next attempt time has passed, oldest first."""
        query = (
            select(ScoreRecomputeJob.id)
            .where(
                and_(
                    ScoreRecomputeJob.status == ScoreJobStatus.PENDING,
                    or_(
                        ScoreRecomputeJob.next_attempt_at.is_(None),
                        ScoreRecomputeJob.next_attempt_at <= utcnow(),
                    ),
                )
            )
            .order_by(ScoreRecomputeJob.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    def register_job_handlers(self, handlers: Dict[str, JobHandler]) -> None:
        """
        Register the recomputation functions for each job type.

        Must be called before any job can be executed, typically during
        application startup.

        Args:
            handlers: Mapping of ScoreJobType value to an async function
                taking (session, job)

        Raises:
            TypeError: If a handler is not callable
            ValueError: If a job type is unknown
        """
        normalized = {}
        for job_type, handler in handlers.items():
            if not callable(handler):
                raise TypeError(f"Handler for {job_type} must be callable")
            normalized[ScoreJobType(job_type).value] = handler

        # Allow re-registration (useful for testing), but log a warning
        if self._handlers:
            logger.warning("Re-registering score job handlers (previous handlers will be replaced)")

        self._handlers = normalized
        logger.info("Score job handlers registered successfully")

    async def run_job(self, job_id: int) -> bool:
        """
        Run a single job in its own session.

        A failed attempt is rolled back and rescheduled with backoff. After
        max_attempts a leaderboard job is marked failed; participant and
        competition jobs stay pending and retry at the capped backoff.

        Returns:
            True if the job completed successfully
        """
        async with db.AsyncSessionLocal() as session:
            result = await session.execute(
                select(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id)
            )
            job = result.scalar_one_or_none()
            if not job or job.status != ScoreJobStatus.PENDING:
                return False

            attempts = (job.attempts or 0) + 1
            job_type = job.job_type
            job.status = ScoreJobStatus.RUNNING
            job.attempts = attempts
            job.started_at = utcnow()
            await session.commit()

            try:
                handler = self._handlers.get(job_type)
                if handler is None:
                    raise RuntimeError(
                        f"No handler registered for {job_type} jobs. "
                        "Call register_job_handlers() before starting the queue worker."
                    )
                await handler(session, job)

                await session.execute(
                    update(ScoreRecomputeJob)
                    .where(ScoreRecomputeJob.id == job_id)
                    .values(status=ScoreJobStatus.COMPLETED, completed_at=utcnow(), error_message=None)
                )
                await session.commit()
                return True

            except Exception as e:
                await session.rollback()
                retry_forever = job_type in RETRY_FOREVER_JOB_TYPES
                if attempts >= self.max_attempts and not retry_forever:
                    logger.error(
                        f"Score job {job_id} ({job_type}) failed permanently after {attempts} attempt(s): {e}",
                        exc_info=True,
                    )
                    values = {
                        "status": ScoreJobStatus.FAILED,
                        "completed_at": utcnow(),
                        "error_message": str(e),
                    }
                else:
                    if attempts >= self.max_attempts:
                        logger.error(
                            f"Score job {job_id} ({job_type}) attempt {attempts} failed, retrying: {e}",
                            exc_info=True,
                        )
                    else:
                        logger.warning(f"Score job {job_id} ({job_type}) attempt {attempts} failed: {e}")
                    values = {
                        "status": ScoreJobStatus.PENDING,
                        "next_attempt_at": utcnow() + backoff_delay(min(attempts, self.max_attempts)),
                        "error_message": str(e),
                    }
                await session.execute(
                    update(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id).values(**values)
                )
                await session.commit()
                return False

    async def process_pending_jobs(self, limit: Optional[int] = None) -> int:
        """
        Run every job that is due.

        Returns:
            Number of jobs attempted
        """
        async with db.AsyncSessionLocal() as session:
            job_ids = await self._get_due_job_ids(session, limit)

        for job_id in job_ids:
            await self.run_job(job_id)
        return len(job_ids)

    async def _process_queue_worker(self) -> None:
        """Background worker that processes due jobs."""
        while not self._stop_event.is_set():
            try:
                processed = await self.process_pending_jobs()
            except Exception as e:
                logger.error(f"Error in score queue worker: {e}", exc_info=True)
                processed = 0

            if processed:
                continue

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def recover_running_jobs(self, session: AsyncSession) -> int:
        """
        Requeue jobs left running by a previous process.

        Returns:
            Number of jobs requeued
        """
        result = await session.execute(
            update(ScoreRecomputeJob)
            .where(ScoreRecomputeJob.status == ScoreJobStatus.RUNNING)
            .values(status=ScoreJobStatus.PENDING, next_attempt_at=utcnow())
        )
        await session.commit()
        if result.rowcount:
            logger.info(f"Requeued {result.rowcount} interrupted score job(s)")
        return result.rowcount

    async def get_queue_status(self, session: AsyncSession) -> Dict:
        """Get current queue status."""
        result = await session.execute(
            select(ScoreRecomputeJob)
            .where(ScoreRecomputeJob.status == ScoreJobStatus.RUNNING)
            .order_by(ScoreRecomputeJob.started_at.asc())
        )
        running = result.scalars().all()

        result = await session.execute(
            select(ScoreRecomputeJob)
            .where(ScoreRecomputeJob.status == ScoreJobStatus.PENDING)
            .order_by(ScoreRecomputeJob.created_at.asc(), ScoreRecomputeJob.id.asc())
        )
        pending = result.scalars().all()

        # Recent completed jobs (last 10)
        result = await session.execute(
            select(ScoreRecomputeJob)
            .where(ScoreRecomputeJob.status == ScoreJobStatus.COMPLETED)
            .order_by(ScoreRecomputeJob.completed_at.desc())
            .limit(10)
        )
        recent_completed = result.scalars().all()

        # Recent failed jobs (last 10)
        result = await session.execute(
            select(ScoreRecomputeJob)
            .where(ScoreRecomputeJob.status == ScoreJobStatus.FAILED)
            .order_by(ScoreRecomputeJob.completed_at.desc())
            .limit(10)
        )
        recent_failed = result.scalars().all()

        return {
            "running": [self._format_job(j) for j in running],
            "pending": [self._format_job(j) for j in pending],
            "recent_completed": [self._format_job(j) for j in recent_completed],
            "recent_failed": [self._format_job(j) for j in recent_failed],
        }

    async def get_job_status(self, session: AsyncSession, job_id: int) -> Optional[Dict]:
        """Get status of a specific job."""
        result = await session.execute(
            select(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id)
        )
        job = result.scalar_one_or_none()
        if not job:
            return None
        return self._format_job(job)

    @staticmethod
    def _format_job(job: ScoreRecomputeJob) -> Dict:
        return {
            "id": job.id,
            "job_type": job.job_type,
            "competition_id": job.competition_id,
            "user_id": job.user_id,
            "status": ScoreJobStatus(job.status).value,
            "attempts": job.attempts,
            "created_at": isoformat_or_none(job.created_at),
            "started_at": isoformat_or_none(job.started_at),
            "completed_at": isoformat_or_none(job.completed_at),
            "next_attempt_at": isoformat_or_none(job.next_attempt_at),
            "error_message": job.error_message,
        }

    def start_background_worker(self) -> None:
        """Start the background worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._process_queue_worker())

    def stop_background_worker(self) -> None:
        """Stop the background worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()


# Global queue instance
_score_queue = ScoreRecomputeQueue()


def get_score_queue() -> ScoreRecomputeQueue:
    """Get the global score queue instance."""
    return _score_queue


async def _run_participant_job(session: AsyncSession, job: ScoreRecomputeJob) -> Dict:
    from reelrank.services import score_service
    from reelrank.utils.exceptions import CompetitionNotFoundError, NotAParticipantError

    try:
        participant = await score_service.recompute_participant(session, job.competition_id, job.user_id)
    except (CompetitionNotFoundError, NotAParticipantError) as e:
        logger.info(f"Skipping score job {job.id}: {e}")
        return {"skipped": True}
    return {"score": participant.score, "rank": participant.rank}


async def _run_competition_job(session: AsyncSession, job: ScoreRecomputeJob) -> Dict:
    from reelrank.services import score_service
    from reelrank.utils.exceptions import CompetitionNotFoundError

    try:
        result = await score_service.recompute_competition(session, job.competition_id)
    except CompetitionNotFoundError as e:
        logger.info(f"Skipping score job {job.id}: {e}")
        return {"skipped": True}
    if result["failed"]:
        raise RuntimeError(
            f"Recompute failed for {len(result['failed'])} participant(s): {result['failed']}"
        )
    return result


async def _run_leaderboard_user_job(session: AsyncSession, job: ScoreRecomputeJob) -> Dict:
    from reelrank.services import leaderboard_service

    return await leaderboard_service.refresh_user_leaderboard(session, job.user_id)


async def _run_leaderboard_rebuild_job(session: AsyncSession, job: ScoreRecomputeJob) -> Dict:
    from reelrank.services import leaderboard_service

    return await leaderboard_service.rebuild_leaderboard_cache(session)


def register_score_queue_handlers() -> None:
    """
    Register the recomputation handlers with the global score queue.

    Called during application startup, before the queue worker is started.
    """
    get_score_queue().register_job_handlers(
        {
            ScoreJobType.PARTICIPANT: _run_participant_job,
            ScoreJobType.COMPETITION: _run_competition_job,
            ScoreJobType.LEADERBOARD_USER: _run_leaderboard_user_job,
            ScoreJobType.LEADERBOARD_REBUILD: _run_leaderboard_rebuild_job,
        }
    )
