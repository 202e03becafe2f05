"""Spending related schemas."""

from pydantic import BaseModel, Field


class SpendingCreate(BaseModel):
    """Request body for proposing a spending.

    Amount and category rules are business validation and are enforced by
    the service, which answers with 400 rather than 422.
    """

    project_id: str = Field(..., min_length=1)
    amount: float = Field(..., allow_inf_nan=False)
    description: str = ""
    category: str | None = None
    date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}")
    product_name: str | None = None
    paid_to_person: str | None = None
    paid_to_place: str | None = None
    ledger_id: str | None = None
    sub_ledger: str | None = None
    funded_by: str | None = None


class VoteCreate(BaseModel):
    """Request body for casting a vote."""

    decision: str = Field(..., min_length=1)
