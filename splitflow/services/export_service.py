"""CSV and XLSX report generation for personal and project exports.

Both encodings are built from the same line-item projection, so the totals
printed in the preamble or summary sheet always equal the sum of the rows.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from openpyxl import Workbook
from supabase import Client

from splitflow.config import settings
from splitflow.services import approvals as votes
from splitflow.services.analytics_service import UNCATEGORIZED, AnalyticsService
from splitflow.services.common import SupabaseService
from splitflow.services.eligibility import ProjectAccess
from splitflow.services.project_service import ProjectService
from splitflow.services.spending_service import SpendingService
from splitflow.utils import spreadsheet as xl
from splitflow.utils.csv_text import csv_document
from splitflow.utils.errors import BadRequestError
from splitflow.utils.money import to_amount
from splitflow.utils.time import date_stamp, now_utc

logger = logging.getLogger(__name__)

CSV = "csv"
XLSX = "xlsx"
CSV_MIME_TYPE = "text/csv;charset=utf-8"
_FORMAT_ALIASES = {"excel": XLSX}
_SUFFIX_UNSAFE = re.compile(r"[^a-z0-9_-]+")
_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")
_HYPHEN_RUNS = re.compile(r"-+")
_SUFFIX_PARTS = (("project_id", "project"), ("ledger_id", "ledger"), ("sub_ledger", "sub"))


def normalize_format(value: str | None, default: str = CSV) -> str:
    """Resolve the requested export format; ``excel`` is an alias of ``xlsx``."""
    fmt = str(value or default).strip().lower()
    fmt = _FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in (CSV, XLSX):
        raise BadRequestError("Supported export formats are csv and xlsx")
    return fmt


def filter_file_suffix(filters: dict[str, Any] | None) -> str:
    """Build the filename fragment describing the active filters."""
    filters = filters or {}
    parts = [
        f"{prefix}-{filters[key]}"
        for key, prefix in _SUFFIX_PARTS
        if filters.get(key)
    ]
    raw = "_".join(parts) if parts else "all"
    return _HYPHEN_RUNS.sub("-", _SUFFIX_UNSAFE.sub("-", raw.lower()))


def project_slug(name: str | None) -> str:
    slug = _HYPHEN_RUNS.sub("-", _SLUG_UNSAFE.sub("-", str(name or "project").lower()))
    return slug.strip("-") or "project"


def amount_header() -> str:
    return f"Amount ({settings.currency_code})"


def fixed(value: float) -> str:
    return f"{value:.2f}"


def share(amount: float, total: float) -> float:
    return amount / total * 100 if total > 0 else 0.0


def totals_by(
    items: list[dict[str, Any]], key: Callable[[dict[str, Any]], str]
) -> list[tuple[str, float]]:
    """Sum item amounts per ``key(item)``, largest first."""
    totals: dict[str, float] = {}
    for item in items:
        name = key(item)
        totals[name] = totals.get(name, 0.0) + item["amount"]
    return sorted(totals.items(), key=lambda entry: entry[1], reverse=True)


def line_item(spending: dict[str, Any]) -> dict[str, Any]:
    """Project an enriched spending onto the columns every export shares."""
    detail = spending.get("detailDisplay") or {}
    added_by = spending.get("added_by_name") or "Unknown Member"
    return {
        "date": spending.get("date") or "",
        "time": spending.get("time") or "",
        "project": spending.get("project_name") or "",
        "ledger": detail.get("ledgerName") or "",
        "sub_ledger": detail.get("subLedger") or "",
        "category": spending.get("category") or "",
        "description": spending.get("description") or "",
        "amount": to_amount(spending.get("amount")),
        "status": str(spending.get("status") or "").upper(),
        "added_by": added_by,
        "funded_by": spending.get("funded_by_name") or added_by,
        "paid_to_person": detail.get("paidToPerson") or "",
        "paid_to_place": detail.get("paidToPlace") or "",
        "product_name": detail.get("productName") or "",
        "approvals": votes.vote_tally(spending.get("approvals")),
    }


EXPENSE_COLUMNS = (
    ("Date", "date"),
    ("Time", "time"),
    ("Project", "project"),
    ("Ledger", "ledger"),
    ("Sub Ledger", "sub_ledger"),
    ("Category", "category"),
    ("Description", "description"),
    (None, "amount"),
    ("Status", "status"),
    ("Added By", "added_by"),
    ("Paid To Person", "paid_to_person"),
    ("Paid To Place", "paid_to_place"),
    ("Product Name", "product_name"),
)

PROJECT_SPENDING_COLUMNS = (
    ("Date", "date"),
    ("Time", "time"),
    ("Status", "status"),
    ("Category", "category"),
    ("Description", "description"),
    (None, "amount"),
    ("Ledger", "ledger"),
    ("Sub Ledger", "sub_ledger"),
    ("Added By", "added_by"),
    ("Funded By", "funded_by"),
    ("Paid To Person", "paid_to_person"),
    ("Paid To Place", "paid_to_place"),
    ("Product Name", "product_name"),
    ("Approvals", "approvals"),
)


def column_headers(columns: tuple[tuple[str | None, str], ...]) -> list[str]:
    return [label or amount_header() for label, _ in columns]


def column_values(item: dict[str, Any], columns, for_csv: bool) -> list[Any]:
    values = []
    for _, key in columns:
        value = item[key]
        values.append(fixed(value) if for_csv and key == "amount" else value)
    return values


def amount_column(columns) -> int:
    return next(index for index, (_, key) in enumerate(columns, start=1) if key == "amount")


class ExportService:
    """Render personal expense history and full project detail reports."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.projects = ProjectService(client)
        self.access = ProjectAccess(self.projects)
        self.analytics = AnalyticsService(client)
        self.spendings = SpendingService(client)

    # ------------------------------------------------------------------
    # Personal expenses
    # ------------------------------------------------------------------

    def export_expenses(
        self,
        actor: dict[str, Any],
        fmt: str | None = CSV,
        filters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Export the caller's approved expense history."""
        fmt = normalize_format(fmt)
        filters = filters or {}
        rows, projects = self.analytics.expense_rows(actor, filters)
        if len(rows) > settings.export_max_rows:
            logger.info(
                "Expense export for %s truncated to %d rows",
                actor.get("id"),
                settings.export_max_rows,
            )
        items = [
            line_item(expense)
            for expense in self.analytics.map_expenses(rows[: settings.export_max_rows], projects)
        ]

        generated_at = now_utc()
        stamp = date_stamp(generated_at)
        total = float(sum(item["amount"] for item in items))
        period = f"{filters.get('from_date') or 'N/A'} to {filters.get('to_date') or stamp}"
        preamble = [
            ("Generated At", generated_at.isoformat()),
            ("Period", period),
            ("Project Filter", filters.get("project_id") or "All Accessible Projects"),
            ("Ledger Filter", filters.get("ledger_id") or "All Ledgers"),
            ("Sub Ledger Filter", filters.get("sub_ledger") or "All Sub Ledgers"),
            ("Total Records", len(items)),
            (f"Total Amount ({settings.currency_code})", total),
        ]
        title = f"{settings.report_brand} Expense Report"
        filename = f"splitflow_expenses_{filter_file_suffix(filters)}_{stamp}.{fmt}"

        if fmt == CSV:
            lines: list[list[Any] | None] = [[title, ""]]
            lines += [
                [label, fixed(value) if isinstance(value, float) else value]
                for label, value in preamble
            ]
            lines.append(None)
            lines.append(column_headers(EXPENSE_COLUMNS))
            lines += [column_values(item, EXPENSE_COLUMNS, for_csv=True) for item in items]
            return self._csv_result(lines, filename)

        workbook = xl.new_workbook(settings.report_brand)
        summary = workbook.create_sheet("Summary")
        xl.set_widths(summary, (26, 20, 26, 20))
        row = xl.write_title(
            summary,
            f"{title} Summary",
            4,
            (f"Period: {period}", f"Generated At: {generated_at.isoformat()}"),
        )
        row = xl.write_kpis(
            summary, row, (("Total Records", len(items)), (amount_header(), float(total)))
        )
        self._write_breakdowns(summary, row, items, member_key="funded_by")

        sheet = workbook.create_sheet("Expenses")
        xl.set_widths(sheet, (14, 10, 24, 22, 20, 16, 34, 16, 14, 22, 20, 20, 18))
        header_row = xl.write_title(sheet, title, len(EXPENSE_COLUMNS), [f"Period: {period}"])
        xl.write_table(
            sheet,
            header_row,
            column_headers(EXPENSE_COLUMNS),
            [column_values(item, EXPENSE_COLUMNS, for_csv=False) for item in items],
            amount_columns=(amount_column(EXPENSE_COLUMNS),),
            total=(amount_column(EXPENSE_COLUMNS), float(total)),
        )
        return self._xlsx_result(workbook, filename)

    # ------------------------------------------------------------------
    # Project detail
    # ------------------------------------------------------------------

    def export_project(
        self, project_id: str, actor: dict[str, Any], fmt: str | None = XLSX
    ) -> dict[str, Any]:
        """Export one project's overview, analytics, members, ledgers and spendings."""
        fmt = normalize_format(fmt, default=XLSX)
        project = self.access.assert_project_access(project_id, actor)

        rows = self.db.select_many(
            "spendings",
            filters={"project_id": project_id},
            order_by="created_at",
            descending=True,
            limit=settings.export_max_rows,
        )
        items = [line_item(spending) for spending in self.spendings.enrich_many(rows, project)]
        ledgers = self.db.select_many(
            "ledgers", filters={"project_id": project_id}, order_by="created_at"
        )
        members = project_member_rows(project)

        generated_at = now_utc()
        overview = project_overview(project, items, members, ledgers)
        status_stats = status_breakdown(items)
        insights = top_insights(items)
        total = overview["total_spent"]
        slug = project_slug(project.get("name"))
        filename = f"splitflow_{slug}_details_{date_stamp(generated_at)}.{fmt}"
        title = f"{settings.report_brand} Project Details Export"
        money = settings.currency_code

        overview_rows: list[tuple[str, Any]] = [
            ("Generated At", generated_at.isoformat()),
            ("Project Name", project.get("name") or ""),
            ("Project Description", project.get("description") or ""),
            ("Project Type", project.get("type") or ""),
            ("Project Status", str(project.get("status") or "").upper()),
            (f"Target Amount ({money})", overview["target_amount"]),
            (f"Raised Amount ({money})", overview["raised_amount"]),
            (f"Approved Spent ({money})", overview["approved_spent"]),
            (f"Pending Spent ({money})", overview["pending_spent"]),
            (f"Rejected Spent ({money})", overview["rejected_spent"]),
            (f"Total Spent ({money})", total),
            (f"Remaining Budget ({money})", overview["remaining"]),
            ("Budget Utilization (%)", overview["utilization"]),
            (f"Average Spending Amount ({money})", overview["average"]),
            ("Members Count", len(members)),
            ("Ledgers Count", len(ledgers)),
            ("Spendings Count", len(items)),
        ]
        member_headers = [
            "Name", "Email", "Role", f"Invested Amount ({money})", "Creator", "User ID"
        ]
        ledger_headers = ["Ledger Name", "Sub-Ledger Count", "Sub-Ledgers", "Ledger ID"]
        ledger_rows = [
            [
                ledger.get("name") or "",
                len(ledger.get("sub_ledgers") or []),
                " | ".join(ledger.get("sub_ledgers") or []),
                str(ledger.get("id") or ""),
            ]
            for ledger in ledgers
        ]

        if fmt == CSV:
            lines: list[list[Any] | None] = [[title, ""]]
            lines += [
                [label, fixed(value) if isinstance(value, float) else value]
                for label, value in overview_rows
            ]
            lines += [None, ["Status Analytics", "", "", ""]]
            lines.append(["Status", "Transactions", amount_header(), "Share (%)"])
            lines += [
                [status, count, fixed(amount), fixed(share(amount, total))]
                for status, count, amount in status_stats
            ]
            lines += [None, ["Top Insights", "", "", ""], ["Metric", "Name", "Value", "Notes"]]
            lines += [
                [metric, name, fixed(amount), note] for metric, name, amount, note in insights
            ]
            lines += [None, ["Members", "", "", "", "", ""], member_headers]
            lines += [
                [
                    member["name"],
                    member["email"],
                    member["role"],
                    fixed(member["invested_amount"]),
                    "Yes" if member["is_creator"] else "No",
                    member["user_id"],
                ]
                for member in members
            ]
            lines += [None, ["Ledgers", "", "", ""], ledger_headers, *ledger_rows]
            lines += [None, ["Spendings"] + [""] * (len(PROJECT_SPENDING_COLUMNS) - 1)]
            lines.append(column_headers(PROJECT_SPENDING_COLUMNS))
            lines += [column_values(item, PROJECT_SPENDING_COLUMNS, for_csv=True) for item in items]
            return self._csv_result(lines, filename)

        workbook = xl.new_workbook(settings.report_brand)
        summary = workbook.create_sheet("Executive Summary")
        xl.set_widths(summary, (30, 22, 26, 22))
        row = xl.write_title(
            summary,
            f"{project.get('name') or 'Project'} Overview",
            4,
            (f"Generated At: {generated_at.isoformat()}",),
        )
        row = xl.write_kpis(
            summary,
            row,
            (
                ("Target Amount", overview["target_amount"]),
                ("Approved Spent", overview["approved_spent"]),
            ),
        )
        row = xl.write_kpis(
            summary,
            row,
            (("Remaining Budget", overview["remaining"]), ("Total Spent", float(total))),
        )
        row = xl.write_breakdown(
            summary, row, 1, "Project Overview", ("Field", "Value"), overview_rows
        )
        row = xl.write_breakdown(
            summary,
            row,
            1,
            "Status Analytics",
            ("Status", "Transactions", amount_header(), "Share (%)"),
            [
                (status, count, float(amount), round(share(amount, total), 2))
                for status, count, amount in status_stats
            ],
        )
        row = xl.write_breakdown(
            summary,
            row,
            1,
            "Top Insights",
            ("Metric", "Name", "Value", "Notes"),
            [(metric, name, float(amount), note) for metric, name, amount, note in insights],
        )
        self._write_breakdowns(summary, row, items, member_key="funded_by")

        members_sheet = workbook.create_sheet("Members")
        xl.set_widths(members_sheet, (24, 30, 12, 20, 10, 38))
        header_row = xl.write_title(members_sheet, "Members", len(member_headers))
        xl.write_table(
            members_sheet,
            header_row,
            member_headers,
            [
                [
                    member["name"],
                    member["email"],
                    member["role"],
                    member["invested_amount"],
                    "Yes" if member["is_creator"] else "No",
                    member["user_id"],
                ]
                for member in members
            ],
            amount_columns=(4,),
        )

        ledgers_sheet = workbook.create_sheet("Ledgers")
        xl.set_widths(ledgers_sheet, (26, 16, 50, 38))
        header_row = xl.write_title(ledgers_sheet, "Ledger Catalog", len(ledger_headers))
        xl.write_table(ledgers_sheet, header_row, ledger_headers, ledger_rows)

        spendings_sheet = workbook.create_sheet("Spendings")
        xl.set_widths(spendings_sheet, (12, 8, 12, 14, 34, 16, 22, 20, 22, 22, 20, 20, 20, 24))
        header_row = xl.write_title(spendings_sheet, "Spendings", len(PROJECT_SPENDING_COLUMNS))
        xl.write_table(
            spendings_sheet,
            header_row,
            column_headers(PROJECT_SPENDING_COLUMNS),
            [column_values(item, PROJECT_SPENDING_COLUMNS, for_csv=False) for item in items],
            amount_columns=(amount_column(PROJECT_SPENDING_COLUMNS),),
            total=(amount_column(PROJECT_SPENDING_COLUMNS), float(total)),
        )
        return self._xlsx_result(workbook, filename)

    # ------------------------------------------------------------------
    # Shared rendering
    # ------------------------------------------------------------------

    def _write_breakdowns(
        self, sheet, row: int, items: list[dict[str, Any]], member_key: str
    ) -> int:
        headers = ("Name", amount_header())
        sections = (
            ("Status Breakdown", lambda item: item["status"] or "UNKNOWN"),
            ("Category Breakdown", lambda item: item["category"] or UNCATEGORIZED),
            ("Ledger Breakdown", lambda item: item["ledger"] or "No Ledger"),
            ("Member Breakdown", lambda item: item[member_key] or "Unassigned"),
        )
        for title, key in sections:
            row = xl.write_breakdown(
                sheet,
                row,
                1,
                title,
                headers,
                [(name, float(amount)) for name, amount in totals_by(items, key)],
            )
        return row

    def _csv_result(self, lines: list[list[Any] | None], filename: str) -> dict[str, Any]:
        return {
            "format": CSV,
            "mimeType": CSV_MIME_TYPE,
            "content": csv_document(lines),
            "filename": filename,
        }

    def _xlsx_result(self, workbook: Workbook, filename: str) -> dict[str, Any]:
        return {
            "format": XLSX,
            "mimeType": xl.XLSX_MIME_TYPE,
            "encoding": "base64",
            "content": xl.workbook_base64(workbook),
            "filename": filename,
        }


def project_member_rows(project: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten the hydrated roster (creator first when not a member) for export."""
    creator_id = str(project.get("created_by") or "")
    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for member in project.get("members") or []:
        user = member.get("user") or {}
        user_id = str(member.get("user_id") or "")
        seen.add(user_id)
        rows.append(
            {
                "user_id": user_id,
                "name": user.get("name") or "Unknown Member",
                "email": user.get("email") or "",
                "role": member.get("role") or "active",
                "invested_amount": to_amount(member.get("invested_amount")),
                "is_creator": user_id == creator_id,
            }
        )
    if creator_id and creator_id not in seen:
        creator = project.get("creator") or {}
        rows.insert(
            0,
            {
                "user_id": creator_id,
                "name": creator.get("name") or "Unknown Member",
                "email": creator.get("email") or "",
                "role": "creator",
                "invested_amount": 0.0,
                "is_creator": True,
            },
        )
    return rows


def project_overview(
    project: dict[str, Any],
    items: list[dict[str, Any]],
    members: list[dict[str, Any]],
    ledgers: list[dict[str, Any]],
) -> dict[str, float]:
    target = to_amount(project.get("target_amount"))
    by_status = {status: amount for status, _, amount in status_breakdown(items)}
    total = float(sum(item["amount"] for item in items))
    approved = by_status.get(votes.APPROVED.upper(), 0.0)
    return {
        "target_amount": target,
        "raised_amount": to_amount(project.get("raised_amount")),
        "approved_spent": approved,
        "pending_spent": by_status.get(votes.PENDING.upper(), 0.0),
        "rejected_spent": by_status.get(votes.REJECTED.upper(), 0.0),
        "total_spent": total,
        "remaining": max(target - approved, 0.0),
        "utilization": round(approved / target * 100, 2) if target > 0 else 0.0,
        "average": round(total / len(items), 2) if items else 0.0,
    }


def status_breakdown(items: list[dict[str, Any]]) -> list[tuple[str, int, float]]:
    """Return ``(STATUS, count, amount)`` for every lifecycle status."""
    stats = []
    for status in votes.STATUSES:
        matching = [item for item in items if item["status"] == status.upper()]
        stats.append((status.upper(), len(matching), sum(item["amount"] for item in matching)))
    return stats


def top_insights(items: list[dict[str, Any]], limit: int = 5) -> list[tuple[str, str, float, str]]:
    """Top contributors, categories and ledgers by amount."""
    total = float(sum(item["amount"] for item in items))
    counts: dict[str, int] = {}
    for item in items:
        contributor = item["funded_by"] or "Unassigned"
        counts[contributor] = counts.get(contributor, 0) + 1

    insights: list[tuple[str, str, float, str]] = [
        ("Top Contributor", name, amount, f"{counts[name]} transactions")
        for name, amount in totals_by(items, lambda item: item["funded_by"] or "Unassigned")[:limit]
    ]
    for metric, key in (
        ("Top Category", lambda item: item["category"] or UNCATEGORIZED),
        ("Top Ledger", lambda item: item["ledger"] or "No Ledger"),
    ):
        insights += [
            (metric, name, amount, f"{share(amount, total):.2f}% of total spend")
            for name, amount in totals_by(items, key)[:limit]
        ]
    return insights
