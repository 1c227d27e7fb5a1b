"""Friend system route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import to_http_exception
from reelrank.database.db import get_db_session
from reelrank.models.schemas import FriendRequestCreate, FriendResponse, FriendshipResponse
from reelrank.services import friend_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/friends/request", response_model=FriendshipResponse)
async def send_friend_request(
    payload: FriendRequestCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a friend request to another user."""
    try:
        return await friend_service.send_friend_request(session, user["id"], payload.friend_id)
    except Exception as e:
        raise to_http_exception(e, "sending friend request")


@router.post("/api/friends/requests/{request_id}/accept", response_model=FriendshipResponse)
async def accept_friend_request(
    request_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pending friend request."""
    try:
        return await friend_service.accept_friend_request(session, request_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "accepting friend request")


@router.post("/api/friends/requests/{request_id}/decline", status_code=204)
async def decline_friend_request(
    request_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a pending friend request (deletes the row so sender can re-request)."""
    try:
        await friend_service.decline_friend_request(session, request_id, user["id"])
    except Exception as e:
        raise to_http_exception(e, "declining friend request")


@router.delete("/api/friends/{friend_id}", status_code=204)
async def remove_friend(
    friend_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a friend."""
    try:
        await friend_service.remove_friend(session, user["id"], friend_id)
    except Exception as e:
        raise to_http_exception(e, "removing friend")


@router.get("/api/friends", response_model=List[FriendResponse])
async def get_friends(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List the caller's friends."""
    try:
        return await friend_service.get_friends(session, user["id"])
    except Exception as e:
        raise to_http_exception(e, "fetching friends")
