"""Approval map helper tests."""

from __future__ import annotations

from datetime import UTC, datetime

from splitflow.services.approvals import (
    approval_summary,
    count_eligible_approvals,
    has_voted,
    is_terminal,
    meets_threshold,
    normalize_approvals,
    record_vote,
    vote_tally,
)

AT = datetime(2026, 5, 1, tzinfo=UTC)


def test_record_vote_replaces_prior_decision_without_mutating() -> None:
    original = {"a": {"status": "approved", "user": "a"}}
    updated = record_vote(original, "a", "rejected", "Ann", AT)

    assert original["a"]["status"] == "approved"
    assert updated["a"] == {
        "status": "rejected",
        "date": AT.isoformat(),
        "user": "a",
        "user_name": "Ann",
    }


def test_normalize_approvals_accepts_legacy_shapes() -> None:
    approvals = normalize_approvals(
        {"k1": {"status": "approved", "user": "a", "userName": "Ann"}, "b": "rejected"}
    )
    assert approvals["a"]["user_name"] == "Ann"
    assert approvals["b"]["status"] == "rejected"
    assert normalize_approvals(None) == {}


def test_departed_voters_do_not_count() -> None:
    approvals = {"a": {"status": "approved"}, "gone": {"status": "approved"}}
    assert count_eligible_approvals(approvals, ["a", "b"]) == 1
    assert not meets_threshold(approvals, ["a", "b"])
    assert meets_threshold(approvals, ["a"])


def test_threshold_needs_at_least_one_voter() -> None:
    assert not meets_threshold({}, [])


def test_approval_summary_lists_progress() -> None:
    approvals = {"a": {"status": "approved", "user_name": "Ann"}, "b": {"status": "rejected"}}
    summary = approval_summary(approvals, ["a", "b", "c"], {"b": "Ben", "c": "Cat"})

    assert summary["requiredApproverCount"] == 3
    assert summary["votedRequiredCount"] == 2
    assert summary["approvedRequiredCount"] == 1
    assert summary["approvedBy"] == [{"id": "a", "name": "Ann"}]
    assert summary["waitingFor"] == [{"id": "b", "name": "Ben"}, {"id": "c", "name": "Cat"}]
    assert summary["awaitingUserIds"] == ["c"]


def test_has_voted_terminal_and_tally() -> None:
    approvals = {"a": {"status": "approved"}, "b": {"status": "rejected"}}
    assert has_voted(approvals, "b")
    assert not has_voted(approvals, "c")
    assert is_terminal("APPROVED")
    assert not is_terminal("pending")
    assert vote_tally(approvals) == "1 approved / 1 rejected"
