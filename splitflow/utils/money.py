"""Amount formatting for messages and reports."""

from __future__ import annotations

from typing import Any

from splitflow.config import settings


def to_amount(value: Any) -> float:
    """Coerce a stored amount to float; blanks count as zero."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def plain_amount(value: float) -> str:
    """Render ``1500.0`` as ``1500`` and ``12.5`` as ``12.5``."""
    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0")


def display_amount(value: float) -> str:
    """Render an amount with the configured currency for notifications."""
    return f"{settings.currency_code} {value:,.2f}".removesuffix(".00")
