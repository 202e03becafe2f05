"""Notification inbox tests."""

from __future__ import annotations

import pytest

from splitflow.services.notification_service import NotificationService
from splitflow.utils.errors import NotFoundError


def test_notify_many_dedupes_and_skips_blanks(db) -> None:
    service = NotificationService(db)
    service.notify_many(["bob", "", "bob", "carol"], "Hello", "Body", {"projectId": "p1"})

    assert [row["user_id"] for row in db.rows("notifications")] == ["bob", "carol"]
    assert db.rows("notifications")[0]["payload"] == {"projectId": "p1"}


def test_send_failure_is_swallowed(db) -> None:
    db.failures[("notifications", "insert")] = RuntimeError("down")
    assert NotificationService(db).send_push("bob", "Hello", "Body") is None


def test_inbox_read_flags(db) -> None:
    service = NotificationService(db)
    for title in ("first", "second", "third"):
        service.send_push("bob", title, "")
    service.send_push("carol", "other", "")

    inbox = service.list_notifications("bob")
    assert [row["title"] for row in inbox] == ["third", "second", "first"]

    marked = service.mark_read("bob", inbox[0]["id"])
    assert marked["read"] is True
    assert len(service.list_notifications("bob", unread_only=True)) == 2
    assert service.mark_all_read("bob") == 2
    assert service.list_notifications("bob", unread_only=True) == []

    with pytest.raises(NotFoundError):
        service.mark_read("bob", db.rows("notifications")[-1]["id"])
