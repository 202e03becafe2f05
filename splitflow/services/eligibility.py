"""Project membership, voter eligibility, and access guards.

Everything here works on a hydrated project snapshot as returned by
:class:`splitflow.services.project_service.ProjectService`::

    {
        "id": "...",
        "created_by": "<user id>",
        "creator": {"id": ..., "name": ..., "role": ...},
        "members": [{"user_id": ..., "role": "active", "user": {...}}, ...],
        ...
    }

The helpers are recomputed on every call. Membership can change between
requests, so nothing is cached across calls.
"""

from __future__ import annotations

from typing import Any

from splitflow.utils.errors import ForbiddenError, NotFoundError

PRIVILEGED_ROLES = frozenset({"admin", "project_admin", "super_admin"})
SUPER_ADMIN = "super_admin"
ACTIVE = "active"


def is_privileged_role(role: str | None) -> bool:
    """Return True for platform roles that may read every project."""
    return (role or "") in PRIVILEGED_ROLES


def actor_id(actor: dict[str, Any]) -> str:
    """Return the caller's user id as a string."""
    return str(actor.get("id") or "")


def _user_role(user: dict[str, Any] | None) -> str:
    return str((user or {}).get("role") or "")


def member_role(member: dict[str, Any]) -> str:
    """Return the member's project role; missing roles count as active."""
    return str(member.get("role") or ACTIVE)


def eligible_voters(project: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the members whose approval every spending in the project needs.

    Active members minus super admins, plus the creator unless the creator is
    a super admin, deduplicated by user id in roster order.
    """
    voters: dict[str, dict[str, Any]] = {}
    for member in project.get("members") or []:
        user_id = str(member.get("user_id") or "")
        if not user_id or member_role(member) != ACTIVE:
            continue
        if _user_role(member.get("user")) == SUPER_ADMIN:
            continue
        voters.setdefault(user_id, member)

    creator_id = str(project.get("created_by") or "")
    creator = project.get("creator") or {}
    if creator_id and creator_id not in voters and _user_role(creator) != SUPER_ADMIN:
        voters[creator_id] = {"user_id": creator_id, "role": ACTIVE, "user": creator}

    return list(voters.values())


def eligible_voter_ids(project: dict[str, Any]) -> list[str]:
    """Return eligible voter ids in roster order."""
    return [str(member["user_id"]) for member in eligible_voters(project)]


def super_admin_ids(project: dict[str, Any]) -> list[str]:
    """Return ids of super-admin observers; they are notified but never vote."""
    ids: list[str] = []
    for member in project.get("members") or []:
        user_id = str(member.get("user_id") or "")
        if user_id and _user_role(member.get("user")) == SUPER_ADMIN and user_id not in ids:
            ids.append(user_id)
    return ids


def member_name_map(project: dict[str, Any]) -> dict[str, str]:
    """Return ``{user_id: display name}`` for members and the creator."""
    names: dict[str, str] = {}
    for member in project.get("members") or []:
        user_id = str(member.get("user_id") or "")
        name = (member.get("user") or {}).get("name")
        if user_id and name:
            names[user_id] = str(name)

    creator_id = str(project.get("created_by") or "")
    creator_name = (project.get("creator") or {}).get("name")
    if creator_id and creator_name:
        names[creator_id] = str(creator_name)
    return names


def project_member_ids(project: dict[str, Any]) -> set[str]:
    """Return the creator plus every member id, regardless of role."""
    ids = {str(member.get("user_id")) for member in project.get("members") or []}
    creator_id = str(project.get("created_by") or "")
    if creator_id:
        ids.add(creator_id)
    ids.discard("")
    ids.discard("None")
    return ids


def is_active_member(project: dict[str, Any], user_id: str) -> bool:
    """Return True when ``user_id`` holds an active role in the project."""
    return any(
        str(member.get("user_id")) == user_id and member_role(member) == ACTIVE
        for member in project.get("members") or []
    )


class ProjectAccess:
    """Access guards shared by the finance services."""

    def __init__(self, projects) -> None:
        self.projects = projects

    def assert_project_access(self, project_id: str, actor: dict[str, Any]) -> dict[str, Any]:
        """Return the project when the caller is a member, creator, or privileged."""
        project = self.projects.find_one(project_id)
        if project is None:
            raise NotFoundError("Project")

        if is_privileged_role(actor.get("role")):
            return project

        if actor_id(actor) not in project_member_ids(project):
            raise ForbiddenError("You do not have access to this project")
        return project

    def assert_project_write_access(
        self, project_id: str, actor: dict[str, Any]
    ) -> dict[str, Any]:
        """Return the project when the caller may change its ledgers.

        Passive investors can read but not mutate.
        """
        project = self.assert_project_access(project_id, actor)
        if is_privileged_role(actor.get("role")):
            return project

        user_id = actor_id(actor)
        is_creator = str(project.get("created_by") or "") == user_id
        if not is_creator and not is_active_member(project, user_id):
            raise ForbiddenError("Only creator or active investors can modify ledgers")
        return project
