"""Project-level endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from supabase import Client

from splitflow.dependencies import get_current_actor, get_db_client
from splitflow.schemas.export import ExportResponse
from splitflow.services.export_service import ExportService
from splitflow.services.project_service import ProjectService

router = APIRouter()


@router.get("")
def list_projects(
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return projects visible to the caller."""
    return {"projects": ProjectService(client).find_all(actor)}


@router.get("/{project_id}/export", response_model=ExportResponse, response_model_exclude_none=True)
def export_project(
    project_id: str,
    format: str = Query(default="xlsx"),
    actor: dict[str, Any] = Depends(get_current_actor),
    client: Client = Depends(get_db_client),
) -> dict:
    """Export full project detail as CSV or XLSX."""
    return ExportService(client).export_project(project_id, actor, format)
