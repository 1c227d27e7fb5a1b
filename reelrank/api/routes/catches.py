"""Catch logging route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import limiter, to_http_exception
from reelrank.database.db import get_db_session
from reelrank.models.schemas import (
    CatchCreate,
    CatchResponse,
    CatchUpdate,
    PointsPreviewRequest,
    PointsPreviewResponse,
)
from reelrank.services import catch_service
from reelrank.services.points_service import compute_points

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/catches", response_model=CatchResponse)
@limiter.limit("60/minute")
async def create_catch(
    request: Request,
    payload: CatchCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Log a catch. Points are computed server-side."""
    try:
        return await catch_service.create_catch(session, user["id"], payload.model_dump())
    except Exception as e:
        raise to_http_exception(e, "logging catch")


@router.get("/api/catches", response_model=List[CatchResponse])
async def list_catches(
    user_id: Optional[int] = None,
    fish_species_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List a user's catches (the caller's by default)."""
    try:
        return await catch_service.get_catches(
            session,
            user_id or user["id"],
            fish_species_id=fish_species_id,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        raise to_http_exception(e, "fetching catches")


@router.get("/api/catches/{catch_id}", response_model=CatchResponse)
async def get_catch(
    catch_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a catch."""
    try:
        return await catch_service.get_catch(session, catch_id)
    except Exception as e:
        raise to_http_exception(e, "fetching catch")


@router.patch("/api/catches/{catch_id}", response_model=CatchResponse)
async def update_catch(
    catch_id: int,
    payload: CatchUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit one of the caller's catches."""
    try:
        return await catch_service.update_catch(
            session, catch_id, user["id"], payload.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise to_http_exception(e, "updating catch")


@router.delete("/api/catches/{catch_id}", status_code=204)
async def delete_catch(
    catch_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete one of the caller's catches."""
    try:
        await catch_service.delete_catch(session, catch_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "deleting catch")


@router.post("/api/points/preview", response_model=PointsPreviewResponse)
async def preview_points(payload: PointsPreviewRequest):
    """Points a catch with these measurements would earn."""
    calculation = compute_points(
        weight=payload.weight, length=payload.length, caught_at=payload.caught_at
    )
    return {"points": calculation.points, "bonuses": calculation.bonuses}
