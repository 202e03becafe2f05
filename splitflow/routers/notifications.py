"""Notification endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from supabase import Client

from splitflow.dependencies import get_current_actor, get_db_client
from splitflow.services.notification_service import NotificationService

router = APIRouter()


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return notifications for current user."""
    service = NotificationService(client)
    notifications = service.list_notifications(
        user_id=actor["id"],
        unread_only=unread_only,
        limit=limit,
    )
    return {"notifications": notifications}


@router.put("/read-all")
def mark_all_read(
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Mark all notifications as read for current user."""
    count = NotificationService(client).mark_all_read(user_id=actor["id"])
    return {"count": count}


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: str,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Mark a single notification as read."""
    notification = NotificationService(client).mark_read(
        user_id=actor["id"],
        notification_id=notification_id,
    )
    return {"notification": notification}
