"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from reelrank.utils.exceptions import ScoringError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared error mapping
# ---------------------------------------------------------------------------
def to_http_exception(error: Exception, action: str) -> HTTPException:
    """
    Map a service error to an HTTPException.

    ScoringError subclasses carry their own status code; other ValueErrors
    are bad requests; anything else is logged and reported as a 500.
    """
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, ScoringError):
        return HTTPException(status_code=error.status_code, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Error {action}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from reelrank.api.routes.competitions import router as competitions_router  # noqa: E402
from reelrank.api.routes.catches import router as catches_router  # noqa: E402
from reelrank.api.routes.leaderboard import router as leaderboard_router  # noqa: E402
from reelrank.api.routes.friends import router as friends_router  # noqa: E402
from reelrank.api.routes.notifications import router as notifications_router  # noqa: E402
from reelrank.api.routes.tackle import router as tackle_router  # noqa: E402
from reelrank.api.routes.queue import router as queue_router  # noqa: E402

router = APIRouter()
router.include_router(competitions_router)
router.include_router(catches_router)
router.include_router(leaderboard_router)
router.include_router(friends_router)
router.include_router(notifications_router)
router.include_router(tackle_router)
router.include_router(queue_router)
