"""
Competition lifecycle worker.

Background worker that polls every minute:
- Moves competitions whose start has been reached to active and those
  whose end has passed to completed (finalizing their results).
- Rebuilds the global leaderboard cache every LEADERBOARD_REBUILD_INTERVAL
  seconds to reconcile any incremental refresh that was lost.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from reelrank.database import db
from reelrank.services import competition_service, leaderboard_service
from reelrank.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# How often the worker checks competition statuses (seconds)
POLL_INTERVAL_SECONDS = 60

# How often the leaderboard cache is fully rebuilt (seconds)
LEADERBOARD_REBUILD_INTERVAL_SECONDS = 3600  # 1 hour


class CompetitionLifecycleService:
    """Background service that advances competition statuses and reconciles leaderboards."""

    def __init__(self):
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_rebuild_at: Optional[datetime] = None

    def start(self) -> None:
        """Start the background lifecycle worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Competition lifecycle worker started")

    def stop(self) -> None:
        """Stop the background lifecycle worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Competition lifecycle worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: run one tick, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in competition lifecycle worker: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    def _rebuild_due(self, now: datetime) -> bool:
        if self._last_rebuild_at is None:
            return True
        return now - self._last_rebuild_at >= timedelta(seconds=LEADERBOARD_REBUILD_INTERVAL_SECONDS)

    async def run_once(self, now: Optional[datetime] = None) -> Dict:
        """
        Advance competition statuses and, when due, rebuild the leaderboard cache.

        Returns:
            Dict with the status transition counts and whether a rebuild ran
        """
        now = now or utcnow()
        async with db.AsyncSessionLocal() as session:
            counts = await competition_service.advance_competition_statuses(session, now)
        if counts["activated"] or counts["completed"]:
            logger.info(
                f"Advanced competitions: {counts['activated']} activated, {counts['completed']} completed"
            )

        rebuilt = False
        if self._rebuild_due(now):
            async with db.AsyncSessionLocal() as session:
                try:
                    await leaderboard_service.rebuild_leaderboard_cache(session)
                    await session.commit()
                    self._last_rebuild_at = now
                    rebuilt = True
                except Exception as e:
                    logger.error(f"Leaderboard cache rebuild failed: {e}", exc_info=True)
                    await session.rollback()

        return {**counts, "leaderboard_rebuilt": rebuilt}


# Global singleton
_lifecycle_service = CompetitionLifecycleService()


def get_competition_lifecycle_service() -> CompetitionLifecycleService:
    """Get the global competition lifecycle service instance."""
    return _lifecycle_service
