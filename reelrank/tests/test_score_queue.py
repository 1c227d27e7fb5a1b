"""
Tests for the score recomputation retry queue.
Tests enqueueing, deduplication, retries with backoff and job status tracking.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from reelrank.database.models import ScoreJobStatus, ScoreRecomputeJob
from reelrank.services import competition_service, score_queue
from reelrank.services.score_queue import ScoreRecomputeQueue, backoff_delay
from reelrank.tests.factories import (
    add_catch,
    add_competition,
    add_participant,
    create_species,
    create_user,
)
from reelrank.utils.datetime_utils import ensure_utc, utcnow

# db_session fixture is provided by conftest.py


@pytest.fixture
def queue():
    """Create a fresh queue instance with recording handlers for each test."""
    q = ScoreRecomputeQueue(max_attempts=3)
    q.calls = []

    async def record(session, job):
        q.calls.append((job.job_type, job.competition_id, job.user_id))
        return {}

    q.register_job_handlers(
        {
            "participant": record,
            "competition": record,
            "leaderboard_user": record,
            "leaderboard_rebuild": record,
        }
    )
    return q


async def _get_job(db_session, job_id):
    result = await db_session.execute(
        select(ScoreRecomputeJob)
        .where(ScoreRecomputeJob.id == job_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def user_id(db_session):
    uid = await create_user(db_session, "alice")
    await db_session.commit()
    return uid


def test_backoff_doubles():
    assert backoff_delay(1) == timedelta(seconds=30)
    assert backoff_delay(2) == timedelta(seconds=60)
    assert backoff_delay(4) == timedelta(seconds=240)


def test_register_rejects_non_callable():
    q = ScoreRecomputeQueue()
    with pytest.raises(TypeError, match="must be callable"):
        q.register_job_handlers({"participant": "not a function"})


def test_register_rejects_unknown_job_type():
    q = ScoreRecomputeQueue()

    async def handler(session, job):
        return None

    with pytest.raises(ValueError):
        q.register_job_handlers({"nightly": handler})


@pytest.mark.asyncio
async def test_enqueue_creates_pending_job(db_session, queue, user_id):
    job_id = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.PENDING
    assert job.attempts == 0
    assert job.user_id == user_id
    assert job.competition_id is None


@pytest.mark.asyncio
async def test_enqueue_rejects_unknown_type(db_session, queue):
    with pytest.raises(ValueError):
        await queue.enqueue(db_session, "nightly")


@pytest.mark.asyncio
async def test_deduplication_same_key(db_session, queue, user_id):
    first = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    second = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    assert first == second

    other = await queue.enqueue(db_session, "leaderboard_rebuild")
    assert other != first

    result = await db_session.execute(select(ScoreRecomputeJob))
    assert len(result.scalars().all()) == 2


@pytest.mark.asyncio
async def test_running_job_does_not_absorb_new_request(db_session, queue, user_id):
    first = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    await db_session.execute(
        update(ScoreRecomputeJob).where(ScoreRecomputeJob.id == first).values(status=ScoreJobStatus.RUNNING)
    )
    await db_session.commit()

    second = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    assert second != first


@pytest.mark.asyncio
async def test_run_job_success(db_session, queue, user_id):
    job_id = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)

    assert await queue.run_job(job_id) is True

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.COMPLETED
    assert job.attempts == 1
    assert job.completed_at is not None
    assert queue.calls == [("leaderboard_user", None, user_id)]


@pytest.mark.asyncio
async def test_run_job_skips_non_pending(db_session, queue, user_id):
    job_id = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    await queue.run_job(job_id)

    assert await queue.run_job(job_id) is False
    assert len(queue.calls) == 1


@pytest.mark.asyncio
async def test_failed_attempt_is_rescheduled_with_backoff(db_session, user_id):
    q = ScoreRecomputeQueue(max_attempts=3)

    async def failing(session, job):
        raise RuntimeError("lock timeout")

    q.register_job_handlers({"leaderboard_user": failing})
    job_id = await q.enqueue(db_session, "leaderboard_user", user_id=user_id)

    before = utcnow()
    assert await q.run_job(job_id) is False

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.PENDING
    assert job.attempts == 1
    assert job.error_message == "lock timeout"
    assert ensure_utc(job.next_attempt_at) >= before + timedelta(seconds=30)

    # Not due yet
    assert await q.process_pending_jobs() == 0


@pytest.mark.asyncio
async def test_leaderboard_job_fails_permanently_after_max_attempts(db_session, user_id):
    q = ScoreRecomputeQueue(max_attempts=2)

    async def failing(session, job):
        raise RuntimeError("still broken")

    q.register_job_handlers({"leaderboard_user": failing})
    job_id = await q.enqueue(db_session, "leaderboard_user", user_id=user_id)

    await q.run_job(job_id)
    await db_session.execute(
        update(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id).values(next_attempt_at=utcnow())
    )
    await db_session.commit()
    assert await q.process_pending_jobs() == 1

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.FAILED
    assert job.attempts == 2
    assert job.error_message == "still broken"
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_missing_handler_counts_as_failure(db_session, user_id):
    q = ScoreRecomputeQueue(max_attempts=1)
    job_id = await q.enqueue(db_session, "leaderboard_user", user_id=user_id)

    assert await q.run_job(job_id) is False

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.FAILED
    assert "No handler registered" in job.error_message


@pytest.mark.asyncio
async def test_process_pending_jobs_runs_due_jobs(db_session, queue, user_id):
    await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    await queue.enqueue(db_session, "leaderboard_rebuild")

    assert await queue.process_pending_jobs() == 2
    assert [call[0] for call in queue.calls] == ["leaderboard_user", "leaderboard_rebuild"]
    assert await queue.process_pending_jobs() == 0


@pytest.mark.asyncio
async def test_recover_running_jobs(db_session, queue, user_id):
    job_id = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    await db_session.execute(
        update(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id).values(status=ScoreJobStatus.RUNNING)
    )
    await db_session.commit()

    assert await queue.recover_running_jobs(db_session) == 1
    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.PENDING


@pytest.mark.asyncio
async def test_queue_status(db_session, queue, user_id):
    done = await queue.enqueue(db_session, "leaderboard_user", user_id=user_id)
    await queue.run_job(done)
    waiting = await queue.enqueue(db_session, "leaderboard_rebuild")
    db_session.expire_all()

    status = await queue.get_queue_status(db_session)

    assert status["running"] == []
    assert [j["id"] for j in status["pending"]] == [waiting]
    assert [j["id"] for j in status["recent_completed"]] == [done]
    assert status["recent_failed"] == []
    assert status["recent_completed"][0]["status"] == "completed"

    job = await queue.get_job_status(db_session, done)
    assert job["job_type"] == "leaderboard_user"
    assert await queue.get_job_status(db_session, 999) is None


@pytest.mark.asyncio
async def test_registered_participant_handler_recomputes(db_session):
    """The production handlers rescore the participant a job names."""
    alice = await create_user(db_session, "alice")
    bass = await create_species(db_session)
    competition = await add_competition(db_session, alice, metric="catches")
    await add_participant(db_session, competition.id, alice)
    await add_catch(db_session, alice, bass, utcnow() - timedelta(hours=1), weight=2)
    await db_session.commit()
    competition_id = competition.id

    q = ScoreRecomputeQueue()
    q.register_job_handlers(
        {
            "participant": score_queue._run_participant_job,
            "competition": score_queue._run_competition_job,
            "leaderboard_user": score_queue._run_leaderboard_user_job,
            "leaderboard_rebuild": score_queue._run_leaderboard_rebuild_job,
        }
    )
    job_id = await q.enqueue(db_session, "participant", competition_id=competition_id, user_id=alice)

    assert await q.run_job(job_id) is True

    db_session.expire_all()

    standing = await competition_service.get_user_competition_rank(db_session, competition_id, alice)
    assert standing["catch_count"] == 1
    assert standing["rank"] == 1


@pytest.mark.asyncio
async def test_participant_job_keeps_retrying_past_max_attempts(db_session):
    """Standings jobs stay pending at the capped backoff until they succeed."""
    alice = await create_user(db_session, "alice")
    bass = await create_species(db_session)
    competition = await add_competition(db_session, alice, metric="catches")
    await add_participant(db_session, competition.id, alice)
    await add_catch(db_session, alice, bass, utcnow() - timedelta(hours=1), weight=2)
    await db_session.commit()
    competition_id = competition.id

    q = ScoreRecomputeQueue(max_attempts=2)
    outages = {"remaining": 3}

    async def flaky(session, job):
        if outages["remaining"]:
            outages["remaining"] -= 1
            raise RuntimeError("database unavailable")
        return await score_queue._run_participant_job(session, job)

    q.register_job_handlers({"participant": flaky})
    job_id = await q.enqueue(db_session, "participant", competition_id=competition_id, user_id=alice)

    for _ in range(3):
        assert await q.run_job(job_id) is False

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.PENDING
    assert job.attempts == 3
    assert job.error_message == "database unavailable"
    assert job.completed_at is None
    assert ensure_utc(job.next_attempt_at) <= utcnow() + backoff_delay(2)

    await db_session.execute(
        update(ScoreRecomputeJob).where(ScoreRecomputeJob.id == job_id).values(next_attempt_at=utcnow())
    )
    await db_session.commit()
    assert await q.process_pending_jobs() == 1

    job = await _get_job(db_session, job_id)
    assert job.status == ScoreJobStatus.COMPLETED
    assert job.attempts == 4
    assert job.error_message is None

    db_session.expire_all()
    standing = await competition_service.get_user_competition_rank(db_session, competition_id, alice)
    assert standing["catch_count"] == 1


@pytest.mark.asyncio
async def test_participant_job_for_departed_user_completes(db_session):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    competition = await add_competition(db_session, alice, metric="catches")
    await add_participant(db_session, competition.id, alice)
    await db_session.commit()
    competition_id = competition.id

    q = ScoreRecomputeQueue(max_attempts=1)
    q.register_job_handlers(
        {
            "participant": score_queue._run_participant_job,
            "competition": score_queue._run_competition_job,
        }
    )
    left = await q.enqueue(db_session, "participant", competition_id=competition_id, user_id=bob)
    deleted = await q.enqueue(db_session, "competition", competition_id=competition_id + 100)

    assert await q.run_job(left) is True
    assert await q.run_job(deleted) is True
    assert (await _get_job(db_session, left)).status == ScoreJobStatus.COMPLETED
    assert (await _get_job(db_session, deleted)).status == ScoreJobStatus.COMPLETED
