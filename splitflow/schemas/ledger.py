"""Ledger catalog schemas."""

from pydantic import BaseModel, Field


class LedgerCreate(BaseModel):
    """Request body for creating a ledger."""

    project_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    sub_ledgers: list[str] = []


class LedgerUpdate(BaseModel):
    """Partial ledger update; omitted fields stay unchanged."""

    name: str | None = None
    sub_ledgers: list[str] | None = None
    project_id: str | None = None
