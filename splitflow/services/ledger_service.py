"""Project-scoped ledger and sub-ledger catalog service."""

from __future__ import annotations

from typing import Any

from supabase import Client

from splitflow.services.common import SupabaseService
from splitflow.services.eligibility import ProjectAccess, is_privileged_role
from splitflow.services.project_service import ProjectService
from splitflow.utils.errors import BadRequestError, NotFoundError


def clean_sub_ledgers(values: list[str] | None) -> list[str]:
    """Trim names, drop blanks and duplicates, keep first-seen order."""
    cleaned: list[str] = []
    for value in values or []:
        name = str(value or "").strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


def sub_ledger_in_catalog(catalog: list[str] | None, sub_ledger: str) -> bool:
    """Return True when ``sub_ledger`` is allowed by the catalog.

    An empty catalog accepts any value.
    """
    names = clean_sub_ledgers(catalog)
    return not names or sub_ledger in names


class LedgerService:
    """CRUD on ledgers, gated by project access."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.projects = ProjectService(client)
        self.access = ProjectAccess(self.projects)

    def _get(self, ledger_id: str) -> dict[str, Any]:
        return self.db.select_one("ledgers", {"id": ledger_id}, not_found_label="Ledger")

    def create_ledger(self, payload: dict[str, Any], actor: dict[str, Any]) -> dict[str, Any]:
        """Create a ledger in a project the caller may write to."""
        project_id = str(payload.get("project_id") or "")
        self.access.assert_project_write_access(project_id, actor)

        name = str(payload.get("name") or "").strip()
        if not name:
            raise BadRequestError("Ledger name is required")

        return self.db.insert_one(
            "ledgers",
            {
                "project_id": project_id,
                "name": name,
                "sub_ledgers": clean_sub_ledgers(payload.get("sub_ledgers")),
            },
        )

    def find_all_ledgers(
        self, project_id: str | None, actor: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """List ledgers for one project, or for every project the caller can see."""
        if project_id:
            self.access.assert_project_access(project_id, actor)
            return self.db.select_many(
                "ledgers", filters={"project_id": project_id}, order_by="created_at"
            )

        if is_privileged_role(actor.get("role")):
            return self.db.select_many("ledgers", order_by="created_at")

        project_ids = [str(project["id"]) for project in self.projects.find_all(actor)]
        return self.db.select_in("ledgers", "project_id", project_ids, order_by="created_at")

    def find_one_ledger(self, ledger_id: str, actor: dict[str, Any]) -> dict[str, Any]:
        """Return one ledger the caller can read."""
        ledger = self._get(ledger_id)
        self.access.assert_project_access(str(ledger["project_id"]), actor)
        return ledger

    def update_ledger(
        self, ledger_id: str, payload: dict[str, Any], actor: dict[str, Any]
    ) -> dict[str, Any]:
        """Rename a ledger, replace its catalog, or move it to another project."""
        existing = self._get(ledger_id)
        source_project_id = str(existing["project_id"])
        target_project_id = str(payload.get("project_id") or source_project_id)
        self.access.assert_project_write_access(source_project_id, actor)
        if target_project_id != source_project_id:
            self.access.assert_project_write_access(target_project_id, actor)

        changes: dict[str, Any] = {}
        if payload.get("name") is not None:
            name = str(payload["name"]).strip()
            if not name:
                raise BadRequestError("Ledger name is required")
            changes["name"] = name
        if payload.get("sub_ledgers") is not None:
            changes["sub_ledgers"] = clean_sub_ledgers(payload["sub_ledgers"])
        if target_project_id != source_project_id:
            changes["project_id"] = target_project_id
        if not changes:
            return existing

        rows = self.db.update("ledgers", {"id": ledger_id}, changes)
        if not rows:
            raise NotFoundError("Ledger")
        return rows[0]

    def delete_ledger(self, ledger_id: str, actor: dict[str, Any]) -> dict[str, bool]:
        """Delete a ledger. Spendings keep their ``ledger_name`` snapshot."""
        existing = self._get(ledger_id)
        self.access.assert_project_write_access(str(existing["project_id"]), actor)
        rows = self.db.delete("ledgers", {"id": ledger_id})
        if not rows:
            raise NotFoundError("Ledger")
        return {"deleted": True}

    def ledgers_by_id(self, ledger_ids: list[str]) -> dict[str, dict[str, Any]]:
        """Return live ledgers keyed by id; deleted ledgers are simply absent."""
        rows = self.db.select_in("ledgers", "id", ledger_ids)
        return {str(row["id"]): row for row in rows}

    def resolve_spending_ledger(
        self, ledger_id: str, sub_ledger: str, project_id: str
    ) -> dict[str, Any] | None:
        """Validate the ledger and sub-ledger requested for a new spending."""
        if not ledger_id:
            if sub_ledger:
                raise BadRequestError("ledgerId is required when subLedger is provided")
            return None

        ledger = self.db.find_one("ledgers", {"id": ledger_id})
        if ledger is None:
            raise BadRequestError("Ledger not found")
        if str(ledger.get("project_id") or "") != project_id:
            raise BadRequestError("Ledger does not belong to this project")
        if sub_ledger and not sub_ledger_in_catalog(ledger.get("sub_ledgers"), sub_ledger):
            raise BadRequestError("Invalid subLedger for selected ledger")
        return ledger
