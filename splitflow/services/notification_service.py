"""Notification service."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from supabase import Client

from splitflow.services.common import SupabaseService
from splitflow.utils.errors import NotFoundError

logger = logging.getLogger(__name__)


class NotificationService:
    """Queue and manage user notifications.

    Delivery is best effort: a failed send is logged and never propagated,
    so it cannot roll back the spending transition that triggered it.
    """

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def send_push(
        self,
        recipient_id: str,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Queue one notification for a user."""
        if not recipient_id:
            return
        try:
            self.db.insert_one(
                "notifications",
                {
                    "user_id": recipient_id,
                    "title": title,
                    "body": body,
                    "payload": payload or {},
                    "read": False,
                },
            )
        except Exception:
            logger.warning("Notification to %s failed: %s", recipient_id, title, exc_info=True)

    def notify_many(
        self,
        recipient_ids: Iterable[str],
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Queue the same notification for several users, once each."""
        seen: set[str] = set()
        for recipient_id in recipient_ids:
            if not recipient_id or recipient_id in seen:
                continue
            seen.add(recipient_id)
            self.send_push(recipient_id, title, body, payload)

    def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return notifications for a user in reverse chronological order."""
        query = (
            self.db.client.table("notifications")
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
        )
        if unread_only:
            query = query.eq("read", False)
        return self.db.execute(query, default=[])

    def mark_read(self, user_id: str, notification_id: str) -> dict[str, Any]:
        """Mark a single notification as read."""
        rows = self.db.update(
            "notifications",
            {"id": notification_id, "user_id": user_id},
            {"read": True},
        )
        if not rows:
            raise NotFoundError("Notification")
        return rows[0]

    def mark_all_read(self, user_id: str) -> int:
        """Mark all unread notifications as read and return affected count."""
        rows = self.db.update("notifications", {"user_id": user_id, "read": False}, {"read": True})
        return len(rows)
