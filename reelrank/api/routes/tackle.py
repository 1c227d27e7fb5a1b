"""Tackle box route handlers."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import limiter, to_http_exception
from reelrank.database.db import get_db_session
from reelrank.models.schemas import TackleFromUrlRequest, TackleItemResponse
from reelrank.services import scrape_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/tackle/from-url", response_model=TackleItemResponse)
@limiter.limit("10/minute")
async def create_tackle_item_from_url(
    request: Request,
    payload: TackleFromUrlRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a tackle box item from a retailer product page."""
    try:
        return await scrape_service.create_tackle_item_from_url(session, user["id"], payload.url)
    except Exception as e:
        raise to_http_exception(e, "adding tackle item")
