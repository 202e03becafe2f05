"""Expense listing, analytics and summary tests."""

from __future__ import annotations

import pytest

from splitflow.services.analytics_service import AnalyticsService
from splitflow.services.export_service import ExportService
from splitflow.services.spending_service import SpendingService
from splitflow.utils.errors import BadRequestError, ForbiddenError
from tests.fakes import ALICE, BOB, CAROL, ROOT, seed_project


def _spend(db, project_id: str, actor: dict, amount: float, date: str, **extra) -> dict:
    payload = {
        "project_id": project_id,
        "amount": amount,
        "date": date,
        "category": "product",
        "product_name": "Urea",
        "description": f"Spend {amount:g}",
    }
    payload.update(extra)
    return SpendingService(db).add_spending(payload, actor)


def test_viewer_without_projects_gets_zeroed_analytics(db) -> None:
    result = AnalyticsService(db).expense_analytics({"id": "nobody", "role": "investor"})
    assert result == {
        "totalSpent": 0,
        "approvedSpent": 0,
        "pendingSpent": 0,
        "dailyAverage": 0,
        "categoryBreakdown": [],
        "monthlyTrend": [],
        "projectBreakdown": [],
    }


def test_expense_analytics_breakdowns(db, solo_project) -> None:
    _spend(db, solo_project, ALICE, 1000, "2026-01-10")
    _spend(
        db,
        solo_project,
        ALICE,
        500,
        "2026-02-03",
        category="service",
        product_name=None,
        paid_to_person="Ravi",
        paid_to_place="Mandi",
    )
    service = AnalyticsService(db)

    january = service.expense_analytics(ALICE, "2026-01-01", "2026-01-31")
    assert january["totalSpent"] == 1000
    assert january["approvedSpent"] == 1000
    assert january["dailyAverage"] == 33
    assert january["categoryBreakdown"] == [
        {"category": "product", "amount": 1000, "percentage": 100.0}
    ]

    overall = service.expense_analytics(ALICE)
    assert overall["totalSpent"] == 1500
    assert overall["dailyAverage"] == 50
    assert [item["percentage"] for item in overall["categoryBreakdown"]] == [66.7, 33.3]
    assert overall["monthlyTrend"] == [
        {"month": "2026-01", "amount": 1000},
        {"month": "2026-02", "amount": 500},
    ]
    assert overall["projectBreakdown"] == [
        {"projectId": solo_project, "projectName": "Mango Orchard", "amount": 1500}
    ]


def test_my_expenses_counts_approved_funded_rows_only(db, duo_project) -> None:
    pending = _spend(db, duo_project, ALICE, 700, "2026-02-01")
    funded_by_carol = _spend(db, duo_project, ALICE, 300, "2026-02-02", funded_by="carol")
    SpendingService(db).vote_spending(funded_by_carol["id"], BOB, "approved")
    service = AnalyticsService(db)

    assert service.my_expenses(ALICE)["total"] == 0

    carol = service.my_expenses(CAROL)
    assert carol["total"] == 1
    assert carol["totalPages"] == 1
    [expense] = carol["expenses"]
    assert expense["id"] == funded_by_carol["id"]
    assert expense["project_name"] == "Mango Orchard"
    assert expense["detailMode"] == "product"

    SpendingService(db).vote_spending(pending["id"], BOB, "approved")
    assert service.my_expenses(ALICE)["total"] == 1


def test_my_expenses_filter_validation(db, duo_project) -> None:
    seed_project(db, "p-hidden", "bob", members=[("bob", "active")])
    db.add("ledgers", {"id": "l-hidden", "project_id": "p-hidden", "name": "Secret"})
    db.add("ledgers", {"id": "l-duo", "project_id": duo_project, "name": "Inputs"})
    service = AnalyticsService(db)

    with pytest.raises(ForbiddenError, match="No access to requested project"):
        service.my_expenses(ALICE, {"project_id": "p-hidden"})
    with pytest.raises(BadRequestError, match="Ledger not found"):
        service.my_expenses(ALICE, {"ledger_id": "nope"})
    with pytest.raises(ForbiddenError, match="No access to requested ledger"):
        service.my_expenses(ALICE, {"ledger_id": "l-hidden"})

    seed_project(db, "p-second", "alice", members=[("alice", "active")])
    with pytest.raises(BadRequestError, match="does not belong to requested projectId"):
        service.my_expenses(ALICE, {"ledger_id": "l-duo", "project_id": "p-second"})


@pytest.mark.parametrize("bad_date", ["2026-02-30", "2026-9-1x"])
def test_malformed_dates_are_bad_requests(db, solo_project, bad_date) -> None:
    _spend(db, solo_project, ALICE, 1000, "2026-01-10")
    service = AnalyticsService(db)

    with pytest.raises(BadRequestError, match="Invalid toDate"):
        service.expense_analytics(ALICE, "2026-01-01", bad_date)
    with pytest.raises(BadRequestError, match="Invalid fromDate"):
        service.my_expenses(ALICE, {"from_date": bad_date})
    with pytest.raises(BadRequestError, match="Invalid fromDate"):
        ExportService(db).export_expenses(ALICE, "csv", {"from_date": bad_date})


def test_date_filters_are_inclusive_and_normalized(db, solo_project) -> None:
    _spend(db, solo_project, ALICE, 1000, "2026-01-10")
    _spend(db, solo_project, ALICE, 500, "2026-01-31")

    result = AnalyticsService(db).expense_analytics(ALICE, "2026-01-10", "20260131")
    assert result["totalSpent"] == 1500
    assert result["dailyAverage"] == 71


def test_spending_summary_splits_statuses(db, duo_project) -> None:
    approved = _spend(db, duo_project, ALICE, 1500, "2026-02-01")
    _spend(db, duo_project, ALICE, 700, "2026-02-02")
    rejected = _spend(db, duo_project, ALICE, 300, "2026-02-03")
    spendings = SpendingService(db)
    spendings.vote_spending(approved["id"], BOB, "approved")
    spendings.vote_spending(rejected["id"], BOB, "rejected")

    summary = AnalyticsService(db).spending_summary(duo_project, CAROL)

    assert summary["totalSpent"] == 2500
    assert (summary["approvedSpent"], summary["approvedCount"]) == (1500, 1)
    assert (summary["pendingSpent"], summary["pendingCount"]) == (700, 1)
    assert (summary["rejectedSpent"], summary["rejectedCount"]) == (300, 1)
    assert summary["spendingCount"] == 3
    assert summary["remaining"] == 48500


def test_bulk_summary_drops_hidden_and_zeroes_empty(db, duo_project, solo_project) -> None:
    seed_project(db, "p-hidden", "bob", members=[("bob", "active")])
    _spend(db, duo_project, ALICE, 700, "2026-02-02")
    service = AnalyticsService(db)

    requested = [duo_project, "p-hidden", duo_project, solo_project]
    result = service.bulk_spending_summary(requested, ALICE)
    summaries = {item["projectId"]: item for item in result["summaries"]}

    assert list(summaries) == [duo_project, solo_project]
    assert summaries[duo_project]["pendingSpent"] == 700
    assert summaries[solo_project]["spendingCount"] == 0
    assert summaries[solo_project]["remaining"] == 10000
    assert service.bulk_spending_summary(["p-hidden"], ALICE) == {"summaries": []}


def test_pending_approvals_inbox(db, duo_project) -> None:
    spending = _spend(db, duo_project, ALICE, 700, "2026-02-02", description="Drip pipes")
    service = AnalyticsService(db)

    inbox = service.pending_approvals(BOB)
    assert inbox["total"] == 1
    [item] = inbox["approvals"]
    assert item["id"] == spending["id"]
    assert item["title"] == "Approve expense: Drip pipes"
    assert item["projectName"] == "Mango Orchard"
    assert item["amount"] == 700

    assert service.pending_approvals(ALICE)["total"] == 0
    assert service.pending_approvals(ROOT)["total"] == 0
    assert service.pending_approvals(CAROL)["total"] == 0

    SpendingService(db).vote_spending(spending["id"], BOB, "approved")
    assert service.pending_approvals(BOB) == {"approvals": [], "total": 0}
