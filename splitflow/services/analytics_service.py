"""Cross-project expense listings, analytics, and spending summaries."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Any

from supabase import Client

from splitflow.config import settings
from splitflow.services import approvals as votes
from splitflow.services.common import SupabaseService, paginate, sum_grouped
from splitflow.services.detail_normalizer import normalize_spending_detail
from splitflow.services.eligibility import (
    ProjectAccess,
    actor_id,
    eligible_voter_ids,
    member_name_map,
)
from splitflow.services.ledger_service import LedgerService
from splitflow.services.project_service import ProjectService
from splitflow.utils.errors import BadRequestError, ForbiddenError
from splitflow.utils.money import to_amount
from splitflow.utils.time import date_filter, days_between, spending_date, spending_time

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def funded_by_actor(spending: dict[str, Any], user_id: str) -> bool:
    """Return True when the spending counts toward ``user_id``'s own expenses.

    The funder owns the expense; legacy rows without a funder fall back to
    the proposer.
    """
    funded_by = str(spending.get("funded_by") or "")
    if funded_by:
        return funded_by == user_id
    return str(spending.get("added_by") or "") == user_id


def in_date_range(spending: dict[str, Any], from_date: str | None, to_date: str | None) -> bool:
    day = spending_date(spending)
    if from_date and (not day or day < from_date[:10]):
        return False
    if to_date and (not day or day > to_date[:10]):
        return False
    return True


def empty_expense_analytics() -> dict[str, Any]:
    return {
        "totalSpent": 0,
        "approvedSpent": 0,
        "pendingSpent": 0,
        "dailyAverage": 0,
        "categoryBreakdown": [],
        "monthlyTrend": [],
        "projectBreakdown": [],
    }


def aggregate_expenses(
    spendings: list[dict[str, Any]],
    project_names: dict[str, str],
    days: int,
) -> dict[str, Any]:
    """Fold spending rows into totals, category, monthly, and project breakdowns."""
    if not spendings:
        return empty_expense_analytics()

    amounts = [to_amount(row.get("amount")) for row in spendings]
    total_spent = sum(amounts)
    by_status = sum_grouped(spendings, lambda row: str(row.get("status") or "").lower())
    by_category = sum_grouped(spendings, lambda row: row.get("category") or UNCATEGORIZED)
    by_month = sum_grouped(
        (row for row in spendings if spending_date(row)),
        lambda row: spending_date(row)[:7],
    )
    by_project = sum_grouped(spendings, lambda row: str(row.get("project_id") or ""))

    category_breakdown = sorted(
        (
            {
                "category": category,
                "amount": bucket["amount"],
                "percentage": round(bucket["amount"] / total_spent * 100, 1)
                if total_spent > 0
                else 0,
            }
            for category, bucket in by_category.items()
        ),
        key=lambda item: item["amount"],
        reverse=True,
    )
    monthly_trend = [
        {"month": month, "amount": by_month[month]["amount"]} for month in sorted(by_month)
    ]
    project_breakdown = sorted(
        (
            {
                "projectId": project_id,
                "projectName": project_names.get(project_id) or "Unknown",
                "amount": bucket["amount"],
            }
            for project_id, bucket in by_project.items()
            if project_id
        ),
        key=lambda item: item["amount"],
        reverse=True,
    )

    return {
        "totalSpent": total_spent,
        "approvedSpent": by_status.get(votes.APPROVED, {}).get("amount", 0),
        "pendingSpent": by_status.get(votes.PENDING, {}).get("amount", 0),
        "dailyAverage": round(total_spent / max(days, 1)),
        "categoryBreakdown": category_breakdown,
        "monthlyTrend": monthly_trend,
        "projectBreakdown": project_breakdown,
    }


def empty_summary(project: dict[str, Any]) -> dict[str, Any]:
    target = to_amount(project.get("target_amount"))
    return {
        "projectId": str(project["id"]),
        "projectName": project.get("name") or "Project",
        "totalSpent": 0.0,
        "approvedSpent": 0.0,
        "pendingSpent": 0.0,
        "rejectedSpent": 0.0,
        "approvedCount": 0,
        "pendingCount": 0,
        "rejectedCount": 0,
        "spendingCount": 0,
        "targetAmount": target,
        "remaining": target,
    }


def apply_status_totals(
    summary: dict[str, Any], totals: dict[str, dict[str, float]]
) -> dict[str, Any]:
    """Add per-status ``{"amount", "count"}`` buckets to a zeroed summary."""
    for status, bucket in totals.items():
        summary["totalSpent"] += bucket["amount"]
        summary["spendingCount"] += int(bucket["count"])
        if status in votes.STATUSES:
            summary[f"{status}Spent"] += bucket["amount"]
            summary[f"{status}Count"] += int(bucket["count"])
    summary["remaining"] = max(summary["targetAmount"] - summary["approvedSpent"], 0)
    return summary


class AnalyticsService:
    """Read-only aggregations over spendings the caller can see."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.projects = ProjectService(client)
        self.access = ProjectAccess(self.projects)
        self.ledgers = LedgerService(client)

    def _require_actor(self, actor: dict[str, Any]) -> str:
        user_id = actor_id(actor)
        if not user_id:
            raise ForbiddenError("Unable to determine current user")
        return user_id

    def _check_ledger_filter(
        self, ledger_id: str, accessible_ids: set[str], project_id: str
    ) -> None:
        ledger = self.db.find_one("ledgers", {"id": ledger_id}, columns="id,project_id")
        if ledger is None:
            raise BadRequestError("Ledger not found")
        ledger_project_id = str(ledger.get("project_id") or "")
        if ledger_project_id not in accessible_ids:
            raise ForbiddenError("No access to requested ledger")
        if project_id and ledger_project_id != project_id:
            raise BadRequestError("ledgerId does not belong to requested projectId")

    def expense_rows(
        self, actor: dict[str, Any], filters: dict[str, Any] | None = None
    ) -> tuple[list[dict[str, Any]], dict[str, dict[str, Any]]]:
        """Return the caller's approved expenses (newest first) and their projects."""
        user_id = self._require_actor(actor)
        filters = dict(filters or {})
        filters["from_date"] = date_filter(filters.get("from_date"), "fromDate")
        filters["to_date"] = date_filter(filters.get("to_date"), "toDate")

        projects = {str(project["id"]): project for project in self.projects.find_all(actor)}
        if not projects:
            return [], projects

        project_id = str(filters.get("project_id") or "").strip()
        ledger_id = str(filters.get("ledger_id") or "").strip()
        sub_ledger = str(filters.get("sub_ledger") or "").strip()
        category = str(filters.get("category") or "").strip().lower()

        if project_id and project_id not in projects:
            raise ForbiddenError("No access to requested project")
        if ledger_id:
            self._check_ledger_filter(ledger_id, set(projects), project_id)

        query_filters: dict[str, Any] = {"status": votes.APPROVED}
        if ledger_id:
            query_filters["ledger_id"] = ledger_id
        if sub_ledger:
            query_filters["sub_ledger"] = sub_ledger
        if category:
            query_filters["category"] = category

        rows = self.db.select_in(
            "spendings",
            "project_id",
            [project_id] if project_id else list(projects),
            filters=query_filters,
            order_by="created_at",
            descending=True,
        )
        rows = [
            row
            for row in rows
            if funded_by_actor(row, user_id)
            and in_date_range(row, filters.get("from_date"), filters.get("to_date"))
        ]
        return rows, projects

    def map_expenses(
        self, rows: list[dict[str, Any]], projects: dict[str, dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Attach project, ledger, funder names and the detail bundle to each row."""
        ledgers = self.ledgers.ledgers_by_id(
            [str(row["ledger_id"]) for row in rows if row.get("ledger_id")]
        )
        names: dict[str, str] = {}
        for project in projects.values():
            names.update(member_name_map(project))

        expenses: list[dict[str, Any]] = []
        for row in rows:
            project = projects.get(str(row.get("project_id") or "")) or {}
            ledger_id = str(row.get("ledger_id") or "")
            live_ledger = ledgers.get(ledger_id) or {}
            ledger_name = str(live_ledger.get("name") or row.get("ledger_name") or "").strip()
            detail = normalize_spending_detail(
                row, ledger_id, ledger_name, live_ledger.get("sub_ledgers")
            )
            added_by = str(row.get("added_by") or "")
            funded_by = str(row.get("funded_by") or "") or added_by
            expenses.append(
                {
                    **row,
                    "amount": to_amount(row.get("amount")),
                    "date": spending_date(row) or None,
                    "time": spending_time(row) or None,
                    "project_name": project.get("name") or "Unknown",
                    "project_type": project.get("type") or "",
                    "ledger_id": ledger_id or None,
                    "ledger_name": detail.ledger_name,
                    "sub_ledger": detail.sub_ledger,
                    "product_name": detail.product_name,
                    "added_by_name": names.get(added_by),
                    "funded_by_name": names.get(funded_by),
                    **detail.to_dict(),
                }
            )
        return expenses

    def my_expenses(
        self,
        actor: dict[str, Any],
        filters: dict[str, Any] | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Paginated history of approved spendings the caller funded."""
        rows, projects = self.expense_rows(actor, filters)
        page, limit = paginate(
            page, limit, settings.expenses_page_size_default, settings.search_page_size_max
        )
        if not projects:
            return {"expenses": [], "total": 0, "page": 1, "totalPages": 0}

        skip = (page - 1) * limit
        total = len(rows)
        return {
            "expenses": self.map_expenses(rows[skip : skip + limit], projects),
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit),
        }

    def expense_analytics(
        self,
        actor: dict[str, Any],
        from_date: str | None = None,
        to_date: str | None = None,
    ) -> dict[str, Any]:
        """Totals and breakdowns over the caller's approved expenses."""
        from_date = date_filter(from_date, "fromDate")
        to_date = date_filter(to_date, "toDate")
        rows, projects = self.expense_rows(actor, {"from_date": from_date, "to_date": to_date})
        if not rows:
            return empty_expense_analytics()

        days = days_between(from_date, to_date, settings.analytics_default_window_days)
        project_names = {
            project_id: project.get("name") or "Unknown"
            for project_id, project in projects.items()
        }
        return aggregate_expenses(rows, project_names, days)

    def spending_summary(self, project_id: str, actor: dict[str, Any]) -> dict[str, Any]:
        """Status totals for one project."""
        project = self.access.assert_project_access(project_id, actor)
        rows = self.db.select_many(
            "spendings", filters={"project_id": project_id}, columns="amount,status"
        )
        totals = sum_grouped(rows, lambda row: str(row.get("status") or "").lower())
        return apply_status_totals(empty_summary(project), totals)

    def bulk_spending_summary(
        self, project_ids: list[str], actor: dict[str, Any]
    ) -> dict[str, list[dict[str, Any]]]:
        """Status totals for many projects from a single grouped fetch.

        Ids the caller cannot see are dropped; visible projects with no
        spendings come back zeroed.
        """
        accessible = {str(project["id"]): project for project in self.projects.find_all(actor)}
        requested: list[str] = []
        for project_id in project_ids or []:
            key = str(project_id or "").strip()
            if key and key in accessible and key not in requested:
                requested.append(key)
        if not requested:
            return {"summaries": []}

        rows = self.db.select_in(
            "spendings", "project_id", requested, columns="project_id,amount,status"
        )
        grouped = sum_grouped(
            rows,
            lambda row: (str(row.get("project_id")), str(row.get("status") or "").lower()),
        )
        totals_by_project: dict[str, dict[str, dict[str, float]]] = defaultdict(dict)
        for (project_id, status), bucket in grouped.items():
            totals_by_project[project_id][status] = bucket

        return {
            "summaries": [
                apply_status_totals(
                    empty_summary(accessible[project_id]),
                    totals_by_project.get(project_id, {}),
                )
                for project_id in requested
            ]
        }

    def pending_approvals(self, actor: dict[str, Any]) -> dict[str, Any]:
        """Pending spendings still waiting on the caller's vote."""
        user_id = self._require_actor(actor)
        projects = {str(project["id"]): project for project in self.projects.find_all(actor)}
        if not projects:
            return {"approvals": [], "total": 0}

        rows = self.db.select_in(
            "spendings",
            "project_id",
            list(projects),
            filters={"status": votes.PENDING},
            order_by="created_at",
            descending=True,
        )

        items: list[dict[str, Any]] = []
        for row in rows:
            project = projects.get(str(row.get("project_id") or ""))
            if project is None or user_id not in eligible_voter_ids(project):
                continue
            if votes.has_voted(row.get("approvals"), user_id):
                continue
            if str(row.get("added_by") or "") == user_id:
                continue
            description = str(row.get("description") or "").strip()
            items.append(
                {
                    "id": str(row["id"]),
                    "type": "spending",
                    "title": f"Approve expense: {description}"
                    if description
                    else "Approve pending expense",
                    "projectId": str(project["id"]),
                    "projectName": project.get("name") or "Project",
                    "proposedAt": row.get("created_at"),
                    "amount": to_amount(row.get("amount")),
                    "status": votes.PENDING,
                }
            )
        return {"approvals": items, "total": len(items)}
