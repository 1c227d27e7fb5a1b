"""Notification and push token route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from reelrank.api.auth_dependencies import require_user
from reelrank.api.routes import to_http_exception
from reelrank.database.db import get_db_session
from reelrank.models.schemas import NotificationResponse, PushTokenRequest
from reelrank.services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/notifications", response_model=List[NotificationResponse])
async def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get user notifications with pagination."""
    try:
        return await notification_service.get_user_notifications(
            session, user["id"], limit=limit, offset=offset, unread_only=unread_only
        )
    except Exception as e:
        raise to_http_exception(e, "fetching notifications")


@router.post("/api/notifications/{notification_id}/read", status_code=204)
async def mark_notification_read(
    notification_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a notification as read."""
    try:
        if not await notification_service.mark_as_read(session, notification_id, user["id"]):
            raise HTTPException(status_code=404, detail="Notification not found")
    except Exception as e:
        raise to_http_exception(e, "marking notification as read")


@router.post("/api/push-tokens", status_code=204)
async def register_push_token(
    payload: PushTokenRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Register a device push token for the caller."""
    try:
        await notification_service.register_push_token(session, user["id"], payload.token)
    except Exception as e:
        raise to_http_exception(e, "registering push token")
