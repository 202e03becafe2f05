"""Delimited-text helpers for report exports."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

BOM = "\ufeff"
_NEEDS_QUOTING = ('"', ",", "\n", "\r")


def escape_cell(value: Any) -> str:
    """Quote a cell only when it contains a quote, comma, or line break."""
    text = "" if value is None else str(value)
    if any(char in text for char in _NEEDS_QUOTING):
        return '"' + text.replace('"', '""') + '"'
    return text


def csv_line(cells: Iterable[Any]) -> str:
    return ",".join(escape_cell(cell) for cell in cells)


def csv_document(rows: Iterable[Iterable[Any] | None]) -> str:
    """Join rows into BOM-prefixed text; ``None`` or empty rows become blank lines."""
    return BOM + "\n".join(csv_line(row) if row else "" for row in rows)
