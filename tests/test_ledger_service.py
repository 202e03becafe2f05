"""Ledger catalog service tests."""

from __future__ import annotations

import pytest

from splitflow.services.ledger_service import (
    LedgerService,
    clean_sub_ledgers,
    sub_ledger_in_catalog,
)
from splitflow.services.spending_service import SpendingService
from splitflow.utils.errors import BadRequestError, ForbiddenError, NotFoundError
from tests.fakes import ALICE, BOB, CAROL, ROOT, seed_project


def test_clean_sub_ledgers_trims_and_dedupes() -> None:
    assert clean_sub_ledgers([" Seeds ", "", "Labor", "Seeds", None]) == ["Seeds", "Labor"]


def test_empty_catalog_accepts_any_sub_ledger() -> None:
    assert sub_ledger_in_catalog([], "Anything")
    assert sub_ledger_in_catalog(["Seeds"], "Seeds")
    assert not sub_ledger_in_catalog(["Seeds"], "Labor")


def test_ledger_crud(db, duo_project) -> None:
    service = LedgerService(db)
    ledger = service.create_ledger(
        {
            "project_id": duo_project,
            "name": " Inputs ",
            "sub_ledgers": ["Seeds", "Seeds", " Labor"],
        },
        ALICE,
    )
    assert ledger["name"] == "Inputs"
    assert ledger["sub_ledgers"] == ["Seeds", "Labor"]

    assert [row["id"] for row in service.find_all_ledgers(duo_project, CAROL)] == [ledger["id"]]
    assert service.find_one_ledger(ledger["id"], BOB)["name"] == "Inputs"

    updated = service.update_ledger(ledger["id"], {"sub_ledgers": ["Fuel"]}, BOB)
    assert updated["sub_ledgers"] == ["Fuel"]
    assert updated["name"] == "Inputs"

    assert service.delete_ledger(ledger["id"], ALICE) == {"deleted": True}
    with pytest.raises(NotFoundError):
        service.find_one_ledger(ledger["id"], ALICE)


def test_passive_investor_cannot_modify(db, duo_project) -> None:
    service = LedgerService(db)
    with pytest.raises(ForbiddenError):
        service.create_ledger({"project_id": duo_project, "name": "Inputs"}, CAROL)
    with pytest.raises(BadRequestError, match="Ledger name is required"):
        service.create_ledger({"project_id": duo_project, "name": "  "}, ALICE)


def test_moving_a_ledger_needs_write_access_to_both_projects(db, solo_project, duo_project) -> None:
    seed_project(db, "p-other", "bob", members=[("bob", "active")])
    service = LedgerService(db)
    ledger = service.create_ledger({"project_id": solo_project, "name": "Inputs"}, ALICE)

    with pytest.raises(ForbiddenError):
        service.update_ledger(ledger["id"], {"project_id": "p-other"}, BOB)
    assert db.get("ledgers", ledger["id"])["project_id"] == solo_project

    with pytest.raises(ForbiddenError):
        service.update_ledger(ledger["id"], {"project_id": "p-other"}, ALICE)

    moved = service.update_ledger(ledger["id"], {"project_id": duo_project}, ALICE)
    assert moved["project_id"] == duo_project


def test_find_all_ledgers_without_project_is_scoped(db, duo_project) -> None:
    seed_project(db, "p-other", "bob", members=[("bob", "active")])
    db.add("ledgers", {"project_id": duo_project, "name": "Inputs", "sub_ledgers": []})
    db.add("ledgers", {"project_id": "p-other", "name": "Private", "sub_ledgers": []})
    service = LedgerService(db)

    assert [row["name"] for row in service.find_all_ledgers(None, ALICE)] == ["Inputs"]
    assert len(service.find_all_ledgers(None, ROOT)) == 2


def test_deleted_ledger_keeps_name_snapshot_on_spendings(db, solo_project) -> None:
    ledger = LedgerService(db).create_ledger({"project_id": solo_project, "name": "Inputs"}, ALICE)
    spendings = SpendingService(db)
    spendings.add_spending(
        {
            "project_id": solo_project,
            "amount": 100,
            "category": "product",
            "product_name": "Urea",
            "ledger_id": ledger["id"],
        },
        ALICE,
    )
    LedgerService(db).delete_ledger(ledger["id"], ALICE)

    [listed] = spendings.find_all(solo_project, ALICE)
    assert listed["ledger_name"] == "Inputs"
    assert listed["detailMode"] == "ledger"
