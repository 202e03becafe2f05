"""Approval map helpers and spending status constants.

A spending row stores its votes as ``{voter_id: {"status", "date", "user",
"user_name"}}``, the current decision per voter. The full history lives in
the append-only ``spending_votes`` table. Every count used to move a
spending out of ``pending`` is restricted to the project's current eligible
voters, so a vote cast by someone who has since left the project never
counts.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

STATUSES = (PENDING, APPROVED, REJECTED)
TERMINAL_STATUSES = frozenset({APPROVED, REJECTED})
VOTE_DECISIONS = frozenset({APPROVED, REJECTED})


def is_terminal(status: str | None) -> bool:
    """Return True once a spending no longer accepts votes."""
    return str(status or "").lower() in TERMINAL_STATUSES


def _voter_id(key: str, approval: dict[str, Any]) -> str:
    return str(approval.get("user") or key)


def normalize_approvals(raw: Any) -> dict[str, dict[str, Any]]:
    """Return a copy of the stored approvals map with missing fields filled in."""
    if not isinstance(raw, dict):
        return {}
    approvals: dict[str, dict[str, Any]] = {}
    for key, approval in raw.items():
        entry = approval if isinstance(approval, dict) else {"status": approval}
        voter = _voter_id(str(key), entry)
        approvals[voter] = {
            "status": entry.get("status"),
            "date": entry.get("date"),
            "user": voter,
            "user_name": entry.get("user_name") or entry.get("userName"),
        }
    return approvals


def record_vote(
    approvals: Any,
    voter_id: str,
    decision: str,
    voter_name: str | None,
    at: datetime,
) -> dict[str, dict[str, Any]]:
    """Return a new approvals map with ``voter_id``'s decision replaced."""
    updated = normalize_approvals(approvals)
    updated[voter_id] = {
        "status": decision,
        "date": at.isoformat(),
        "user": voter_id,
        "user_name": voter_name,
    }
    return updated


def has_voted(approvals: Any, user_id: str) -> bool:
    """Return True when ``user_id`` has any recorded decision."""
    return user_id in normalize_approvals(approvals)


def count_eligible_approvals(approvals: Any, eligible_ids: Iterable[str]) -> int:
    """Count approved decisions cast by currently eligible voters."""
    eligible = {str(value) for value in eligible_ids}
    return sum(
        1
        for voter, approval in normalize_approvals(approvals).items()
        if approval.get("status") == APPROVED and voter in eligible
    )


def meets_threshold(approvals: Any, eligible_ids: list[str]) -> bool:
    """Return True when every eligible voter has approved."""
    required = len(eligible_ids)
    return required > 0 and count_eligible_approvals(approvals, eligible_ids) >= required


def approval_participants(
    approvals: Any,
    eligible_ids: list[str],
    names: dict[str, str] | None = None,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Split eligible voters into ``approved_by`` and ``waiting_for`` lists."""
    names = names or {}
    normalized = normalize_approvals(approvals)
    eligible = set(eligible_ids)

    approved_by = [
        {"id": voter, "name": approval.get("user_name") or names.get(voter)}
        for voter, approval in normalized.items()
        if voter in eligible and approval.get("status") == APPROVED
    ]
    approved_ids = {item["id"] for item in approved_by}
    waiting_for = [
        {
            "id": voter,
            "name": names.get(voter) or (normalized.get(voter) or {}).get("user_name"),
        }
        for voter in eligible_ids
        if voter not in approved_ids
    ]
    return approved_by, waiting_for


def approval_summary(
    approvals: Any,
    eligible_ids: list[str],
    names: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Return the approval progress block attached to every spending response."""
    normalized = normalize_approvals(approvals)
    approved_by, waiting_for = approval_participants(normalized, eligible_ids, names)
    voted = [voter for voter in normalized if voter in set(eligible_ids)]
    awaiting = [voter for voter in eligible_ids if voter not in normalized]
    return {
        "requiredApproverIds": list(eligible_ids),
        "requiredApproverCount": len(eligible_ids),
        "votedRequiredCount": len(voted),
        "approvedRequiredCount": len(approved_by),
        "pendingRequiredCount": len(waiting_for),
        "awaitingUserIds": awaiting,
        "approvedBy": approved_by,
        "waitingFor": waiting_for,
    }


def vote_tally(approvals: Any) -> str:
    """Return ``"<n> approved / <m> rejected"`` over all recorded decisions."""
    statuses = [str(a.get("status") or "").lower() for a in normalize_approvals(approvals).values()]
    return f"{statuses.count(APPROVED)} approved / {statuses.count(REJECTED)} rejected"
