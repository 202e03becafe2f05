"""openpyxl styling helpers shared by the spreadsheet exports."""

from __future__ import annotations

import base64
from collections.abc import Iterable, Sequence
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
AMOUNT_FORMAT = "#,##0.00"

BRAND_COLOR = "FF1F4E78"
MUTED_COLOR = "FF4B5563"
KPI_VALUE_FILL = PatternFill("solid", fgColor="FFEFF6FF")
HEADER_FILL = PatternFill("solid", fgColor=BRAND_COLOR)
STRIPE_FILL = PatternFill("solid", fgColor="FFF8FAFC")
TOTAL_FILL = PatternFill("solid", fgColor="FFE8EEF8")

_thin = Side(style="thin", color="FFD9D9D9")
THIN_BORDER = Border(top=_thin, left=_thin, bottom=_thin, right=_thin)


def set_widths(sheet: Worksheet, widths: Sequence[int]) -> None:
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width


def write_title(sheet: Worksheet, title: str, span: int, subtitles: Iterable[str] = ()) -> int:
    """Write a merged title row plus muted subtitle lines; return the next free row."""
    sheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=max(span, 1))
    cell = sheet.cell(row=1, column=1, value=title)
    cell.font = Font(bold=True, size=18, color=BRAND_COLOR)
    cell.alignment = Alignment(horizontal="left", vertical="center")

    row = 2
    for subtitle in subtitles:
        sheet.cell(row=row, column=1, value=subtitle).font = Font(color=MUTED_COLOR)
        row += 1
    return row + 1


def write_kpis(sheet: Worksheet, row: int, tiles: Sequence[tuple[str, Any]]) -> int:
    """Write label/value KPI tiles side by side on one row."""
    for index, (label, value) in enumerate(tiles):
        column = index * 2 + 1
        label_cell = sheet.cell(row=row, column=column, value=label)
        label_cell.font = Font(bold=True, color="FFFFFFFF")
        label_cell.fill = HEADER_FILL
        label_cell.alignment = Alignment(horizontal="left", vertical="center")

        value_cell = sheet.cell(row=row, column=column + 1, value=value)
        value_cell.font = Font(bold=True)
        value_cell.fill = KPI_VALUE_FILL
        if isinstance(value, float):
            value_cell.number_format = AMOUNT_FORMAT
    return row + 2


def write_breakdown(
    sheet: Worksheet,
    row: int,
    column: int,
    title: str,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
) -> int:
    """Write a small titled table; float cells get the amount format."""
    sheet.cell(row=row, column=column, value=title).font = Font(bold=True, size=12)
    for offset, header in enumerate(headers):
        sheet.cell(row=row + 1, column=column + offset, value=header).font = Font(bold=True)

    current = row + 2
    for values in rows:
        for offset, value in enumerate(values):
            cell = sheet.cell(row=current, column=column + offset, value=value)
            if isinstance(value, float):
                cell.number_format = AMOUNT_FORMAT
        current += 1
    return current + 1


def write_table(
    sheet: Worksheet,
    header_row: int,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    amount_columns: Sequence[int] = (),
    total: tuple[int, float] | None = None,
) -> int:
    """Write a data table with frozen header, auto-filter and stripes.

    ``amount_columns`` are 1-based column indexes formatted as currency.
    ``total`` is ``(column, amount)`` for a trailing TOTAL row. Returns the
    last written row.
    """
    for index, header in enumerate(headers, start=1):
        cell = sheet.cell(row=header_row, column=index, value=header)
        cell.font = Font(bold=True, color="FFFFFFFF")
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = THIN_BORDER

    current = header_row
    for values in rows:
        current += 1
        for index, value in enumerate(values, start=1):
            cell = sheet.cell(row=current, column=index, value=value)
            cell.alignment = Alignment(horizontal="left", vertical="center")
            if index in amount_columns:
                cell.number_format = AMOUNT_FORMAT
            if current % 2 == 0:
                cell.fill = STRIPE_FILL

    last_column = get_column_letter(len(headers))
    sheet.freeze_panes = sheet.cell(row=header_row + 1, column=1)
    sheet.auto_filter.ref = f"A{header_row}:{last_column}{max(current, header_row)}"

    if total is not None:
        current += 1
        total_column, amount = total
        for index in range(1, len(headers) + 1):
            cell = sheet.cell(row=current, column=index)
            cell.font = Font(bold=True)
            cell.fill = TOTAL_FILL
        sheet.cell(row=current, column=1, value="TOTAL")
        sheet.cell(row=current, column=total_column, value=amount).number_format = AMOUNT_FORMAT
    return current


def new_workbook(creator: str) -> Workbook:
    """Return an empty workbook (default sheet removed) stamped with ``creator``."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    workbook.properties.creator = creator
    workbook.properties.lastModifiedBy = creator
    return workbook


def workbook_base64(workbook: Workbook) -> str:
    """Serialize a workbook to a base64 string for JSON transport."""
    buffer = BytesIO()
    workbook.save(buffer)
    return base64.b64encode(buffer.getvalue()).decode("ascii")
