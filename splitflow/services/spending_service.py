"""Spending proposal, voting, listing, and enrichment logic."""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from supabase import Client

from splitflow.config import settings
from splitflow.services import approvals as votes
from splitflow.services.common import SupabaseService, paginate
from splitflow.services.detail_normalizer import normalize_spending_detail
from splitflow.services.eligibility import (
    SUPER_ADMIN,
    ProjectAccess,
    actor_id,
    eligible_voter_ids,
    member_name_map,
    project_member_ids,
    super_admin_ids,
)
from splitflow.services.ledger_service import LedgerService
from splitflow.services.notification_service import NotificationService
from splitflow.services.project_service import ProjectService
from splitflow.utils.errors import (
    BadRequestError,
    ConcurrentUpdateError,
    ForbiddenError,
    NotFoundError,
    SpendingFinalizedError,
)
from splitflow.utils.money import display_amount, plain_amount, to_amount
from splitflow.utils.time import date_filter, now_utc, spending_date, spending_time

logger = logging.getLogger(__name__)

PRODUCT = "product"
SERVICE = "service"
_SEARCH_UNSAFE = re.compile(r"[,()*%\\]")


def parse_status_filter(status: str | None) -> set[str]:
    """Parse ``"pending,approved"`` into a lower-cased set."""
    if not status:
        return set()
    return {value.strip().lower() for value in str(status).split(",") if value.strip()}


def validate_category_fields(category: str, product_name: str, person: str, place: str) -> None:
    """Products need a product name; services need both paid-to fields."""
    if category == PRODUCT and not product_name:
        raise BadRequestError("Product name is required for Product category")
    if category == SERVICE and (not person or not place):
        raise BadRequestError("Paid To person and place are required for Service category")


def ensure_capacity(target_amount: float, existing_amounts: list[float], amount: float) -> None:
    """Reject an amount that would push the all-status project total over target."""
    total_spent = sum(existing_amounts)
    if total_spent + amount > target_amount:
        remaining = plain_amount(target_amount - total_spent)
        raise BadRequestError(f"Spending exceeds project target amount. Remaining: {remaining}")


def search_filter(term: str) -> str | None:
    """Build the PostgREST ``or`` filter for the spending search box."""
    cleaned = _SEARCH_UNSAFE.sub(" ", term).strip()
    if not cleaned:
        return None
    pattern = f"%{cleaned}%"
    clauses = [
        f"{column}.ilike.{pattern}"
        for column in ("description", "category", "sub_ledger", "date", "product_name")
    ]
    if cleaned.isdigit():
        clauses.append(f"amount.eq.{cleaned}")
    return ",".join(clauses)


def matches_filters(
    spending: dict[str, Any],
    statuses: set[str],
    from_date: str,
    to_date: str,
    owner_user_id: str,
) -> bool:
    """Apply the listing filters to an enriched spending."""
    if owner_user_id and str(spending.get("owner_user_id") or "") != owner_user_id:
        return False
    if statuses and str(spending.get("status") or "").lower() not in statuses:
        return False
    day = str(spending.get("date") or "")
    if from_date and day and day < from_date:
        return False
    if to_date and day and day > to_date:
        return False
    return True


class SpendingService:
    """Spending lifecycle: propose, vote, reconcile, list."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.projects = ProjectService(client)
        self.access = ProjectAccess(self.projects)
        self.ledgers = LedgerService(client)
        self.notifications = NotificationService(client)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _name_map(self, project: dict[str, Any], rows: list[dict[str, Any]]) -> dict[str, str]:
        names = member_name_map(project)
        referenced = {str(row.get(key) or "") for row in rows for key in ("added_by", "funded_by")}
        missing = [user_id for user_id in referenced if user_id and user_id not in names]
        for user_id, user in self.db.get_users_map(missing).items():
            if user.get("name"):
                names[user_id] = str(user["name"])
        return names

    def enrich_many(
        self, rows: list[dict[str, Any]], project: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Enrich spending rows of one project for API responses."""
        if not rows:
            return []
        eligible_ids = eligible_voter_ids(project)
        names = self._name_map(project, rows)
        ledgers = self.ledgers.ledgers_by_id(
            [str(row["ledger_id"]) for row in rows if row.get("ledger_id")]
        )
        return [enrich_spending(row, eligible_ids, names, ledgers) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_guarded(self, spending: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        """Update a spending only if nobody else changed it since it was read."""
        version = int(spending.get("version") or 1)
        rows = self.db.update(
            "spendings",
            {"id": spending["id"], "version": version},
            {**changes, "version": version + 1},
        )
        if not rows:
            raise ConcurrentUpdateError()
        return rows[0]

    def _append_vote_event(
        self, spending_id: str, voter_id: str, decision: str, voter_name: str | None
    ) -> None:
        try:
            self.db.insert_one(
                "spending_votes",
                {
                    "spending_id": spending_id,
                    "voter_id": voter_id,
                    "decision": decision,
                    "voter_name": voter_name,
                },
            )
        except Exception:
            logger.warning("Vote event for spending %s not recorded", spending_id, exc_info=True)

    def add_spending(self, payload: dict[str, Any], actor: dict[str, Any]) -> dict[str, Any]:
        """Propose a spending; solo-voter projects approve it immediately."""
        project_id = str(payload.get("project_id") or "")
        project = self.projects.find_one(project_id)
        if project is None:
            raise NotFoundError("Project")

        amount = to_amount(payload.get("amount"))
        if not math.isfinite(amount) or amount <= 0:
            raise BadRequestError("Spending amount must be positive")

        user_id = actor_id(actor)
        if not user_id:
            raise ForbiddenError("Unable to determine current user")

        voter_ids = eligible_voter_ids(project)
        if actor.get("role") == SUPER_ADMIN:
            raise ForbiddenError(
                "Super admins cannot add spendings. They can only observe project activity."
            )
        if user_id not in voter_ids:
            raise ForbiddenError("Only active investors can add spending")

        category = str(payload.get("category") or "").strip().lower()
        product_name = str(payload.get("product_name") or "").strip()
        person = str(payload.get("paid_to_person") or "").strip()
        place = str(payload.get("paid_to_place") or "").strip()
        validate_category_fields(category, product_name, person, place)

        funded_by = str(payload.get("funded_by") or "").strip() or user_id
        if funded_by not in project_member_ids(project):
            raise BadRequestError("fundedBy must be a project member")

        ledger_id = str(payload.get("ledger_id") or "").strip()
        sub_ledger = str(payload.get("sub_ledger") or "").strip()
        ledger = self.ledgers.resolve_spending_ledger(ledger_id, sub_ledger, project_id)

        existing = self.db.select_many(
            "spendings", filters={"project_id": project_id}, columns="amount"
        )
        ensure_capacity(
            to_amount(project.get("target_amount")),
            [to_amount(row.get("amount")) for row in existing],
            amount,
        )

        now = now_utc()
        names = member_name_map(project)
        actor_name = names.get(user_id) or actor.get("name") or "Unknown"
        status = votes.APPROVED if len(voter_ids) <= 1 else votes.PENDING

        created = self.db.insert_one(
            "spendings",
            {
                "project_id": project_id,
                "amount": amount,
                "description": str(payload.get("description") or "").strip(),
                "category": category,
                "date": payload.get("date") or now.date().isoformat(),
                "time": payload.get("time") or now.strftime("%H:%M"),
                "product_name": product_name if category == PRODUCT else None,
                "paid_to_person": person if category == SERVICE else None,
                "paid_to_place": place if category == SERVICE else None,
                "ledger_id": ledger_id or None,
                "ledger_name": ledger["name"] if ledger else None,
                "sub_ledger": sub_ledger or None,
                "added_by": user_id,
                "funded_by": funded_by,
                "status": status,
                "approvals": votes.record_vote({}, user_id, votes.APPROVED, actor_name, now),
                "version": 1,
            },
        )
        self._append_vote_event(str(created["id"]), user_id, votes.APPROVED, actor_name)

        if status == votes.PENDING:
            self._notify_pending(project, created, user_id, actor_name, voter_ids)
        else:
            logger.info("Spending %s auto-approved for solo project %s", created["id"], project_id)

        return self.enrich_many([created], project)[0]

    def vote_spending(
        self, spending_id: str, actor: dict[str, Any], decision: str
    ) -> dict[str, Any]:
        """Record an approve/reject vote and finalize the spending when due."""
        spending = self.db.select_one("spendings", {"id": spending_id}, not_found_label="Spending")
        if votes.is_terminal(spending.get("status")):
            raise SpendingFinalizedError(str(spending["status"]).lower())

        decision = str(decision or "").strip().lower()
        if decision not in votes.VOTE_DECISIONS:
            raise BadRequestError("Vote must be 'approved' or 'rejected'")

        project = self.projects.find_one(str(spending["project_id"]))
        if project is None:
            raise NotFoundError("Project")

        user_id = actor_id(actor)
        voter_ids = eligible_voter_ids(project)
        if actor.get("role") == SUPER_ADMIN:
            raise ForbiddenError(
                "Super admins cannot vote on spendings. "
                "Only active investors can approve or reject."
            )
        if user_id not in voter_ids:
            raise ForbiddenError("Only active investors can vote")

        voter_name = member_name_map(project).get(user_id) or actor.get("name") or "Unknown"
        approvals = votes.record_vote(
            spending.get("approvals"), user_id, decision, voter_name, now_utc()
        )
        changes: dict[str, Any] = {"approvals": approvals}
        if decision == votes.REJECTED:
            changes["status"] = votes.REJECTED
        elif votes.meets_threshold(approvals, voter_ids):
            changes["status"] = votes.APPROVED

        updated = self._write_guarded(spending, changes)
        self._append_vote_event(spending_id, user_id, decision, voter_name)

        if updated["status"] == votes.REJECTED:
            self._notify_finalized(updated, project, rejected_by=voter_name)
        elif updated["status"] == votes.APPROVED:
            self._notify_finalized(updated, project)

        return self.enrich_many([updated], project)[0]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_pending(
        self,
        project: dict[str, Any],
        spending: dict[str, Any],
        proposer_id: str,
        proposer_name: str,
        voter_ids: list[str],
    ) -> None:
        amount = display_amount(to_amount(spending["amount"]))
        payload = {"spendingId": str(spending["id"]), "projectId": str(project["id"])}
        self.notifications.notify_many(
            [voter for voter in voter_ids if voter != proposer_id],
            "New Spending Request",
            f"{proposer_name} requests approval for {amount} in {project.get('name')}",
            payload,
        )
        self.notifications.notify_many(
            [admin for admin in super_admin_ids(project) if admin != proposer_id],
            "New Spending Activity",
            f"{proposer_name} submitted a spending of {amount} in {project.get('name')} "
            "(pending approval)",
            payload,
        )

    def _notify_finalized(
        self,
        spending: dict[str, Any],
        project: dict[str, Any],
        rejected_by: str | None = None,
    ) -> None:
        amount = display_amount(to_amount(spending["amount"]))
        payload = {"spendingId": str(spending["id"]), "projectId": str(project["id"])}
        project_name = project.get("name")
        if rejected_by:
            title = "Spending Rejected"
            owner_body = (
                f"Your spending of {amount} in {project_name} was rejected by {rejected_by}."
            )
            observer_body = f"{rejected_by} rejected a spending of {amount} in {project_name}."
        else:
            title = "Spending Approved"
            owner_body = f"Your spending of {amount} in {project_name} is fully approved."
            observer_body = f"A spending of {amount} in {project_name} was fully approved."

        owner_id = str(spending.get("added_by") or "")
        self.notifications.send_push(owner_id, title, owner_body, payload)
        self.notifications.notify_many(super_admin_ids(project), title, observer_body, payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def reconcile_pending(
        self, rows: list[dict[str, Any]], project: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Approve pending spendings that already meet the current threshold.

        Membership can change after votes are cast (a holdout leaves, for
        example). Each row is handled on its own; a failure is logged and the
        row is returned unchanged.
        """
        eligible_ids = eligible_voter_ids(project)
        if not eligible_ids:
            return rows

        reconciled: list[dict[str, Any]] = []
        for row in rows:
            if row.get("status") != votes.PENDING or not votes.meets_threshold(
                row.get("approvals"), eligible_ids
            ):
                reconciled.append(row)
                continue
            try:
                updated = self._write_guarded(row, {"status": votes.APPROVED})
            except Exception:
                logger.exception("Reconciliation failed for spending %s", row.get("id"))
                reconciled.append(row)
                continue

            logger.info("Spending %s approved during reconciliation", row["id"])
            self.notifications.send_push(
                str(updated.get("added_by") or ""),
                "Spending Approved",
                f"Your spending of {display_amount(to_amount(updated['amount']))} "
                "has been approved.",
                {"spendingId": str(updated["id"]), "projectId": str(project["id"])},
            )
            reconciled.append(updated)
        return reconciled

    def find_all(
        self,
        project_id: str,
        actor: dict[str, Any],
        owner_user_id: str | None = None,
        status: str | None = None,
        from_date: str | None = None,
        to_date: str | None = None,
    ) -> list[dict[str, Any]]:
        """List a project's spendings after reconciling pending ones."""
        if not project_id:
            raise BadRequestError("projectId is required")
        from_date = date_filter(from_date, "fromDate")
        to_date = date_filter(to_date, "toDate")
        project = self.access.assert_project_access(project_id, actor)

        rows = self.db.select_many(
            "spendings",
            filters={"project_id": project_id},
            order_by="created_at",
            descending=True,
        )
        rows = self.reconcile_pending(rows, project)

        statuses = parse_status_filter(status)
        return [
            spending
            for spending in self.enrich_many(rows, project)
            if matches_filters(
                spending, statuses, from_date or "", to_date or "", owner_user_id or ""
            )
        ]

    def search_spendings(
        self,
        project_id: str,
        actor: dict[str, Any],
        search: str | None = None,
        status: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Paginated free-text search over one project's spendings.

        Unlike :meth:`find_all` this read path skips the reconciliation sweep,
        so a spending awaiting a departed voter shows as pending here until the
        next full listing.
        """
        if not project_id:
            raise BadRequestError("projectId is required")
        project = self.access.assert_project_access(project_id, actor)

        page, limit = paginate(
            page, limit, settings.search_page_size_default, settings.search_page_size_max
        )
        skip = (page - 1) * limit

        query = (
            self.db.client.table("spendings")
            .select("*", count="exact")
            .eq("project_id", project_id)
        )
        status_value = (status or "").strip().lower()
        if status_value and status_value != "all":
            query = query.eq("status", status_value)
        text_filter = search_filter(search or "")
        if text_filter:
            query = query.or_(text_filter)
        query = query.order("created_at", desc=True).range(skip, skip + limit - 1)

        rows, total = self.db.execute_with_count(query)
        spendings = self.enrich_many(rows, project)
        return {
            "spendings": spendings,
            "total": total,
            "page": page,
            "limit": limit,
            "hasMore": skip + len(spendings) < total,
        }


def enrich_spending(
    row: dict[str, Any],
    eligible_ids: list[str],
    names: dict[str, str],
    ledgers: dict[str, dict[str, Any]],
) -> dict[str, Any]:
    """Return the API shape of one spending row."""
    added_by = str(row.get("added_by") or "")
    funded_by = str(row.get("funded_by") or "") or added_by
    status = str(row.get("status") or "").lower()

    ledger_id = str(row.get("ledger_id") or "")
    live_ledger = ledgers.get(ledger_id) or {}
    ledger_name = str(live_ledger.get("name") or row.get("ledger_name") or "").strip()
    detail = normalize_spending_detail(
        row, ledger_id, ledger_name, live_ledger.get("sub_ledgers")
    )

    approvals = votes.normalize_approvals(row.get("approvals"))
    for voter, approval in approvals.items():
        approval["user_name"] = approval.get("user_name") or names.get(voter)

    summary = votes.approval_summary(approvals, eligible_ids, names)
    if status == votes.APPROVED and summary["waitingFor"]:
        logger.debug(
            "Spending %s approved but now waits on %s after membership changes",
            row.get("id"),
            [item["id"] for item in summary["waitingFor"]],
        )

    added_by_name = names.get(added_by)
    return {
        **row,
        "id": str(row.get("id")),
        "amount": to_amount(row.get("amount")),
        "status": status,
        "ledger_id": ledger_id or None,
        "ledger_name": detail.ledger_name or None,
        "added_by": added_by or None,
        "added_by_name": added_by_name,
        "funded_by": funded_by or None,
        "funded_by_name": names.get(funded_by) or added_by_name,
        "owner_user_id": (funded_by if status == votes.APPROVED else added_by) or None,
        "date": spending_date(row) or None,
        "time": spending_time(row) or None,
        "approvals": approvals,
        **detail.to_dict(),
        "approvalSummary": summary,
    }
