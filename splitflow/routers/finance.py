"""Spending, ledger, analytics and export endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from supabase import Client

from splitflow.dependencies import get_current_actor, get_db_client
from splitflow.schemas.export import ExportResponse
from splitflow.schemas.ledger import LedgerCreate, LedgerUpdate
from splitflow.schemas.spending import SpendingCreate, VoteCreate
from splitflow.services import (
    AnalyticsService,
    ExportService,
    LedgerService,
    SpendingService,
)

router = APIRouter()


@router.post("/spendings")
def add_spending(
    payload: SpendingCreate,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Propose a spending for approval."""
    spending = SpendingService(client).add_spending(payload.model_dump(), actor)
    return {"spending": spending}


@router.get("/spendings")
def list_spendings(
    project_id: str = Query(default=""),
    owner_user_id: str | None = Query(default=None),
    status: str | None = Query(default=None),
    from_date: str | None = Query(default=None),
    to_date: str | None = Query(default=None),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return a project's spendings after reconciling pending approvals."""
    spendings = SpendingService(client).find_all(
        project_id,
        actor,
        owner_user_id=owner_user_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
    )
    return {"spendings": spendings}


@router.get("/spendings/search")
def search_spendings(
    project_id: str = Query(default=""),
    search: str | None = Query(default=None),
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Paginated free-text search over a project's spendings."""
    return SpendingService(client).search_spendings(
        project_id, actor, search=search, status=status, page=page, limit=limit
    )


@router.post("/spendings/{spending_id}/vote")
def vote_spending(
    spending_id: str,
    payload: VoteCreate,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Approve or reject a pending spending."""
    spending = SpendingService(client).vote_spending(spending_id, actor, payload.decision)
    return {"spending": spending}


@router.post("/ledgers")
def create_ledger(
    payload: LedgerCreate,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create a ledger with its sub-ledger catalog."""
    ledger = LedgerService(client).create_ledger(payload.model_dump(), actor)
    return {"ledger": ledger}


@router.get("/ledgers")
def list_ledgers(
    project_id: str | None = Query(default=None),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return ledgers of one project, or of every visible project."""
    ledgers = LedgerService(client).find_all_ledgers(project_id, actor)
    return {"ledgers": ledgers}


@router.get("/ledgers/{ledger_id}")
def get_ledger(
    ledger_id: str,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    ledger = LedgerService(client).find_one_ledger(ledger_id, actor)
    return {"ledger": ledger}


@router.put("/ledgers/{ledger_id}")
def update_ledger(
    ledger_id: str,
    payload: LedgerUpdate,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    ledger = LedgerService(client).update_ledger(
        ledger_id, payload.model_dump(exclude_unset=True), actor
    )
    return {"ledger": ledger}


@router.delete("/ledgers/{ledger_id}")
def delete_ledger(
    ledger_id: str,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    return LedgerService(client).delete_ledger(ledger_id, actor)


@router.get("/my-expenses")
def my_expenses(
    project_id: str | None = Query(default=None),
    ledger_id: str | None = Query(default=None),
    sub_ledger: str | None = Query(default=None),
    category: str | None = Query(default=None),
    from_date: str | None = Query(default=None),
    to_date: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return the caller's approved expenses across projects."""
    filters = {
        "project_id": project_id,
        "ledger_id": ledger_id,
        "sub_ledger": sub_ledger,
        "category": category,
        "from_date": from_date,
        "to_date": to_date,
    }
    return AnalyticsService(client).my_expenses(actor, filters, page=page, limit=limit)


@router.get("/expense-analytics")
def expense_analytics(
    from_date: str | None = Query(default=None),
    to_date: str | None = Query(default=None),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return totals and breakdowns of the caller's expenses."""
    return AnalyticsService(client).expense_analytics(actor, from_date, to_date)


@router.get("/my-pending-approvals")
def my_pending_approvals(
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return pending spendings waiting on the caller's vote."""
    return AnalyticsService(client).pending_approvals(actor)


@router.get("/spending-summary")
def spending_summary(
    project_id: str,
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    return AnalyticsService(client).spending_summary(project_id, actor)


@router.get("/spending-summary/bulk")
def bulk_spending_summary(
    project_ids: str = Query(default="", description="Comma-separated project ids"),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return spending summaries for several projects at once."""
    ids = [value.strip() for value in project_ids.split(",") if value.strip()]
    return AnalyticsService(client).bulk_spending_summary(ids, actor)


@router.get("/export", response_model=ExportResponse, response_model_exclude_none=True)
def export_expenses(
    format: str = Query(default="csv"),
    project_id: str | None = Query(default=None),
    ledger_id: str | None = Query(default=None),
    sub_ledger: str | None = Query(default=None),
    from_date: str | None = Query(default=None),
    to_date: str | None = Query(default=None),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Export the caller's expense history as CSV or XLSX."""
    filters = {
        "project_id": project_id,
        "ledger_id": ledger_id,
        "sub_ledger": sub_ledger,
        "from_date": from_date,
        "to_date": to_date,
    }
    return ExportService(client).export_expenses(actor, format, filters)
