"""Competition and invitation route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import limiter, to_http_exception
from reelrank.database.db import get_db_session
from reelrank.database.models import CompetitionStatus, CompetitionType
from reelrank.models.schemas import (
    CompetitionCreate,
    CompetitionLeaderboardEntry,
    CompetitionRankResponse,
    CompetitionResponse,
    CompetitionUpdate,
    InvitationRespondRequest,
    InvitationResponse,
    InviteRequest,
    ParticipantResponse,
)
from reelrank.services import competition_service
from reelrank.utils.constants import COMPETITION_LEADERBOARD_LIMIT

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/competitions", response_model=CompetitionResponse)
@limiter.limit("30/minute")
async def create_competition(
    request: Request,
    payload: CompetitionCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a competition; the creator is enrolled automatically."""
    try:
        return await competition_service.create_competition(session, user["id"], payload.model_dump())
    except Exception as e:
        raise to_http_exception(e, "creating competition")


@router.get("/api/competitions", response_model=List[CompetitionResponse])
async def list_competitions(
    status: Optional[CompetitionStatus] = None,
    type: Optional[CompetitionType] = None,
    participating: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List public competitions plus the caller's own."""
    try:
        return await competition_service.get_competitions(
            session,
            user["id"],
            status=status.value if status else None,
            type=type.value if type else None,
            participating=participating,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        raise to_http_exception(e, "fetching competitions")


@router.get("/api/competitions/{competition_id}", response_model=CompetitionResponse)
async def get_competition(
    competition_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a competition."""
    try:
        return await competition_service.get_competition(session, competition_id, user_id=user["id"])
    except Exception as e:
        raise to_http_exception(e, "fetching competition")


@router.patch("/api/competitions/{competition_id}", response_model=CompetitionResponse)
async def update_competition(
    competition_id: int,
    payload: CompetitionUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a pending or active competition (creator only)."""
    try:
        return await competition_service.update_competition(
            session, competition_id, user["id"], payload.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise to_http_exception(e, "updating competition")


@router.post("/api/competitions/{competition_id}/join", response_model=ParticipantResponse)
async def join_competition(
    competition_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a competition."""
    try:
        return await competition_service.join_competition(session, competition_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "joining competition")


@router.post("/api/competitions/{competition_id}/leave", status_code=204)
async def leave_competition(
    competition_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a competition that has not started yet."""
    try:
        await competition_service.leave_competition(session, competition_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "leaving competition")


@router.post("/api/competitions/{competition_id}/cancel", response_model=CompetitionResponse)
async def cancel_competition(
    competition_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a pending or active competition (creator only)."""
    try:
        return await competition_service.cancel_competition(session, competition_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "cancelling competition")


@router.post("/api/competitions/{competition_id}/invitations", response_model=InvitationResponse)
@limiter.limit("60/minute")
async def invite_to_competition(
    request: Request,
    competition_id: int,
    payload: InviteRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a user to a competition the caller participates in."""
    try:
        return await competition_service.invite_to_competition(
            session, competition_id, user["id"], payload.invitee_id
        )
    except Exception as e:
        raise to_http_exception(e, "sending invitation")


@router.get(
    "/api/competitions/{competition_id}/leaderboard",
    response_model=List[CompetitionLeaderboardEntry],
)
async def get_competition_leaderboard(
    competition_id: int,
    limit: int = Query(COMPETITION_LEADERBOARD_LIMIT, ge=1, le=500),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Ranked participants of a competition."""
    try:
        await competition_service.get_competition(session, competition_id, user_id=user["id"])
        return await competition_service.get_competition_leaderboard(session, competition_id, limit=limit)
    except Exception as e:
        raise to_http_exception(e, "fetching competition leaderboard")


@router.get("/api/competitions/{competition_id}/rank", response_model=CompetitionRankResponse)
async def get_my_competition_rank(
    competition_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's standing in a competition."""
    try:
        result = await competition_service.get_user_competition_rank(session, competition_id, user["id"])
        if result is None:
            raise HTTPException(status_code=404, detail="Not a participant in this competition")
        return result
    except Exception as e:
        raise to_http_exception(e, "fetching competition rank")


@router.get("/api/invitations", response_model=List[InvitationResponse])
async def get_pending_invitations(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Pending competition invitations for the caller."""
    try:
        return await competition_service.get_pending_invitations(session, user["id"])
    except Exception as e:
        raise to_http_exception(e, "fetching invitations")


@router.post("/api/invitations/{invitation_id}/respond", response_model=InvitationResponse)
async def respond_to_invitation(
    invitation_id: int,
    payload: InvitationRespondRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept or decline a competition invitation."""
    try:
        return await competition_service.respond_to_invitation(
            session, invitation_id, payload.accept, user["id"]
        )
    except Exception as e:
        raise to_http_exception(e, "responding to invitation")
