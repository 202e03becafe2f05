"""CSV and XLSX export tests."""

from __future__ import annotations

import base64
import csv
import io

import pytest
from openpyxl import load_workbook

from splitflow.services.export_service import (
    ExportService,
    filter_file_suffix,
    normalize_format,
    project_slug,
)
from splitflow.services.spending_service import SpendingService
from splitflow.utils.csv_text import BOM, escape_cell
from splitflow.utils.errors import BadRequestError
from tests.fakes import ALICE, BOB


def _csv_rows(content: str) -> list[list[str]]:
    assert content.startswith(BOM)
    return list(csv.reader(io.StringIO(content[len(BOM) :])))


def _preamble_value(rows: list[list[str]], label: str) -> str:
    return next(row[1] for row in rows if row and row[0] == label)


def _seed_spendings(db, project_id: str) -> None:
    spendings = SpendingService(db)
    for amount, description in ((1250.5, 'Seeds, "hybrid"'), (749.5, "Labor\nweek 2")):
        spendings.add_spending(
            {
                "project_id": project_id,
                "amount": amount,
                "category": "product",
                "product_name": "Urea",
                "description": description,
                "date": "2026-02-01",
            },
            ALICE,
        )


def _load(result: dict):
    assert result["encoding"] == "base64"
    return load_workbook(io.BytesIO(base64.b64decode(result["content"])))


def _table_total(sheet, amount_column: int) -> tuple[float, float]:
    """Return ``(sum of data rows, TOTAL row value)`` of a data sheet."""
    values = [row for row in sheet.iter_rows(values_only=True)]
    header_index = next(i for i, row in enumerate(values) if row[0] == "Date")
    line_sum = 0.0
    for row in values[header_index + 1 :]:
        if row[0] == "TOTAL":
            return line_sum, row[amount_column - 1]
        line_sum += row[amount_column - 1]
    raise AssertionError("TOTAL row missing")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("plain", "plain"),
        ("a,b", '"a,b"'),
        ('say "hi"', '"say ""hi"""'),
        ("two\nlines", '"two\nlines"'),
        (None, ""),
        (12.5, "12.5"),
    ],
)
def test_escape_cell(value, expected) -> None:
    assert escape_cell(value) == expected


def test_filename_helpers() -> None:
    assert filter_file_suffix({}) == "all"
    suffix = filter_file_suffix({"project_id": "P1", "sub_ledger": "Seeds & Feed"})
    assert suffix == "project-p1_sub-seeds-feed"
    assert filter_file_suffix({"ledger_id": "L 9"}) == "ledger-l-9"
    assert project_slug("  Mango Orchard!! ") == "mango-orchard"
    assert project_slug("***") == "project"


def test_format_aliases() -> None:
    assert normalize_format("EXCEL") == "xlsx"
    assert normalize_format(None) == "csv"
    with pytest.raises(BadRequestError, match="Supported export formats are csv and xlsx"):
        normalize_format("pdf")


def test_empty_csv_export_totals_zero(db) -> None:
    result = ExportService(db).export_expenses({"id": "nobody", "role": "investor"}, "csv")

    assert result["mimeType"] == "text/csv;charset=utf-8"
    assert result["filename"].startswith("splitflow_expenses_all_")
    assert "encoding" not in result
    rows = _csv_rows(result["content"])
    assert rows[0][0] == "SplitFlow Expense Report"
    assert _preamble_value(rows, "Total Records") == "0"
    assert _preamble_value(rows, "Total Amount (INR)") == "0.00"
    assert rows[-1][0] == "Date"


def test_csv_export_total_matches_rows(db, solo_project) -> None:
    _seed_spendings(db, solo_project)
    result = ExportService(db).export_expenses(ALICE, "csv", {"project_id": solo_project})

    assert result["filename"].startswith(f"splitflow_expenses_project-{solo_project}_")
    rows = _csv_rows(result["content"])
    header_index = next(i for i, row in enumerate(rows) if row and row[0] == "Date")
    amount_index = rows[header_index].index("Amount (INR)")
    data = rows[header_index + 1 :]

    assert len(data) == 2
    assert {row[6] for row in data} == {'Seeds, "hybrid"', "Labor\nweek 2"}
    assert _preamble_value(rows, "Total Amount (INR)") == "2000.00"
    assert sum(float(row[amount_index]) for row in data) == 2000.0


def test_xlsx_export_sheets_and_total(db, solo_project) -> None:
    _seed_spendings(db, solo_project)
    result = ExportService(db).export_expenses(ALICE, "excel")

    assert result["format"] == "xlsx"
    assert result["filename"].endswith(".xlsx")
    workbook = _load(result)
    assert workbook.sheetnames == ["Summary", "Expenses"]

    sheet = workbook["Expenses"]
    line_sum, total = _table_total(sheet, amount_column=8)
    assert line_sum == total == 2000.0
    assert sheet.freeze_panes == "A5"
    assert sheet.auto_filter.ref.startswith("A4:")


def test_empty_xlsx_export_total_zero(db) -> None:
    nobody = {"id": "nobody", "role": "investor"}
    workbook = _load(ExportService(db).export_expenses(nobody, "xlsx"))
    line_sum, total = _table_total(workbook["Expenses"], amount_column=8)
    assert line_sum == total == 0.0


def test_project_csv_export(db, duo_project) -> None:
    _seed_spendings(db, duo_project)
    pending = SpendingService(db).search_spendings(duo_project, ALICE)["spendings"][0]
    SpendingService(db).vote_spending(pending["id"], BOB, "approved")
    ledger = {"project_id": duo_project, "name": "Inputs", "sub_ledgers": ["Seeds", "Labor"]}
    db.add("ledgers", ledger)

    result = ExportService(db).export_project(duo_project, ALICE, "csv")

    assert result["filename"].startswith("splitflow_mango-orchard_details_")
    rows = _csv_rows(result["content"])
    assert _preamble_value(rows, "Total Spent (INR)") == "2000.00"
    assert _preamble_value(rows, "Spendings Count") == "2"
    ledger_row = next(row for row in rows if row and row[0] == "Inputs")
    assert ledger_row[:3] == ["Inputs", "2", "Seeds | Labor"]
    labels = ("APPROVED", "PENDING", "REJECTED")
    statuses = {row[0]: row[1] for row in rows if row and row[0] in labels}
    assert statuses == {"APPROVED": "1", "PENDING": "1", "REJECTED": "0"}


def test_project_xlsx_export(db, duo_project) -> None:
    _seed_spendings(db, duo_project)
    result = ExportService(db).export_project(duo_project, BOB)

    workbook = _load(result)
    assert workbook.sheetnames == ["Executive Summary", "Members", "Ledgers", "Spendings"]
    line_sum, total = _table_total(workbook["Spendings"], amount_column=6)
    assert line_sum == total == 2000.0
    member_names = [row[0] for row in workbook["Members"].iter_rows(min_row=4, values_only=True)]
    assert member_names == ["Alice", "Bob", "Carol", "Root"]
