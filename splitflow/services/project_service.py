"""Read-only access to projects, their members, and users."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from supabase import Client

from splitflow.services.common import SupabaseService, group_by
from splitflow.services.eligibility import actor_id, is_privileged_role


class ProjectService:
    """Load hydrated project snapshots; project membership is owned elsewhere."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def _hydrate(self, projects: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not projects:
            return []

        project_ids = [str(project["id"]) for project in projects]
        member_rows = self.db.select_in(
            "project_members", "project_id", project_ids, order_by="joined_at"
        )
        members_by_project = group_by(member_rows, "project_id")

        user_ids = {str(row["user_id"]) for row in member_rows}
        user_ids.update(str(p["created_by"]) for p in projects if p.get("created_by"))
        users = self.db.get_users_map(user_ids)

        hydrated: list[dict[str, Any]] = []
        for project in projects:
            payload = dict(project)
            payload["members"] = [
                {
                    "user_id": str(row["user_id"]),
                    "role": row.get("role") or "active",
                    "invested_amount": float(row.get("invested_amount") or 0),
                    "joined_at": row.get("joined_at"),
                    "user": users.get(str(row["user_id"])) or {"id": str(row["user_id"])},
                }
                for row in members_by_project.get(str(project["id"]), [])
            ]
            creator_id = str(project.get("created_by") or "")
            payload["creator"] = users.get(creator_id) or ({"id": creator_id} if creator_id else {})
            hydrated.append(payload)
        return hydrated

    def find_one(self, project_id: str) -> dict[str, Any] | None:
        """Return one hydrated project or None."""
        if not project_id:
            return None
        project = self.db.find_one("projects", {"id": project_id})
        if project is None:
            return None
        return self._hydrate([project])[0]

    def find_many(self, project_ids: Iterable[str]) -> list[dict[str, Any]]:
        """Return hydrated projects for the given ids, newest first; unknown ids are skipped."""
        projects = self.db.select_in(
            "projects", "id", project_ids, order_by="created_at", descending=True
        )
        return self._hydrate(projects)

    def find_all(self, actor: dict[str, Any]) -> list[dict[str, Any]]:
        """Return every project the caller may see, newest first."""
        if is_privileged_role(actor.get("role")):
            projects = self.db.select_many("projects", order_by="created_at", descending=True)
            return self._hydrate(projects)

        user_id = actor_id(actor)
        if not user_id:
            return []

        member_rows = self.db.select_many(
            "project_members", filters={"user_id": user_id}, columns="project_id"
        )
        created_rows = self.db.select_many(
            "projects", filters={"created_by": user_id}, columns="id"
        )
        project_ids = {str(row["project_id"]) for row in member_rows}
        project_ids.update(str(row["id"]) for row in created_rows)
        if not project_ids:
            return []

        return self.find_many(project_ids)
