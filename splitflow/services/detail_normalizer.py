"""Reconcile the historical spending-detail shapes into one display model.

Spending rows were written in several shapes over time: a free-text
sub-ledger only, an explicit ledger reference, product fields, or service
(paid-to) fields. :func:`normalize_spending_detail` runs the rules below in
order and returns a :class:`SpendingDetail`. API responses and both export
formats go through it, so they always agree.

The result is deterministic and idempotent: feeding a normalized bundle back
in produces the same bundle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ARCHIVED_LEDGER_NAME = "Archived Ledger"

DETAIL_LEDGER = "ledger"
DETAIL_PRODUCT = "product"
DETAIL_SERVICE = "service"
DETAIL_UNKNOWN = "unknown"


@dataclass(frozen=True)
class SpendingDetail:
    """Canonical display bundle for one spending."""

    detail_mode: str
    ledger_name: str
    sub_ledger: str
    product_name: str
    paid_to_person: str
    paid_to_place: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the API response shape."""
        return {
            "detailMode": self.detail_mode,
            "detailDisplay": {
                "ledgerName": self.ledger_name,
                "subLedger": self.sub_ledger,
                "productName": self.product_name,
                "paidToPerson": self.paid_to_person,
                "paidToPlace": self.paid_to_place,
            },
        }


def _text(value: Any) -> str:
    return str(value or "").strip()


def clean_catalog(catalog: Any) -> list[str]:
    """Return a sub-ledger catalog with blanks dropped and entries trimmed."""
    if not isinstance(catalog, (list, tuple)):
        return []
    return [name for name in (_text(value) for value in catalog) if name]


def paid_to_fields(spending: dict[str, Any]) -> tuple[str, str]:
    """Return ``(person, place)`` from column, nested, or legacy string shapes."""
    paid_to = spending.get("paid_to")
    nested = paid_to if isinstance(paid_to, dict) else {}
    person = _text(
        spending.get("paid_to_person")
        or nested.get("person")
        or (paid_to if isinstance(paid_to, str) else "")
    )
    place = _text(spending.get("paid_to_place") or nested.get("place"))
    return person, place


def has_ledger_reference(ledger_id: str, ledger_name: str) -> bool:
    """Rule 1: a ledger id or a resolved ledger name is present."""
    return bool(_text(ledger_id) or _text(ledger_name))


def initial_product_name(
    spending: dict[str, Any], has_ledger: bool, category: str
) -> str:
    """Explicit product name, legacy ``material_type``, or an unfiled product sub-ledger."""
    explicit = _text(spending.get("product_name") or spending.get("material_type"))
    if explicit:
        return explicit
    if not has_ledger and category == DETAIL_PRODUCT:
        return _text(spending.get("sub_ledger"))
    return ""


def apply_misfiled_product_rule(
    has_ledger: bool, category: str, product_name: str, sub_ledger: str
) -> tuple[str, str]:
    """Rule 2: a ledgered product with no name was filed under its sub-ledger."""
    if has_ledger and category == DETAIL_PRODUCT and not product_name and sub_ledger:
        return sub_ledger, ""
    return product_name, sub_ledger


def apply_catalog_mismatch_rule(
    has_ledger: bool,
    catalog: list[str],
    raw_sub_ledger: str,
    product_name: str,
    sub_ledger: str,
) -> tuple[str, str]:
    """Rule 3: a sub-ledger outside a non-empty catalog becomes the product name."""
    if not has_ledger or not raw_sub_ledger or not catalog or raw_sub_ledger in catalog:
        return product_name, sub_ledger
    return product_name or raw_sub_ledger, ""


def apply_bare_sub_ledger_rule(
    has_ledger: bool,
    category: str,
    product_name: str,
    raw_sub_ledger: str,
    paid_to_person: str,
    paid_to_place: str,
    sub_ledger: str,
) -> tuple[str, str]:
    """Rule 4: the oldest rows carried only a sub-ledger string, which named the product."""
    if (
        not has_ledger
        and not category
        and not product_name
        and raw_sub_ledger
        and not paid_to_person
        and not paid_to_place
    ):
        return raw_sub_ledger, ""
    return product_name, sub_ledger


def resolve_detail_mode(
    has_ledger: bool,
    category: str,
    product_name: str,
    paid_to_person: str,
    paid_to_place: str,
) -> str:
    """Rule 5: pick the display mode."""
    if has_ledger:
        return DETAIL_LEDGER
    if category == DETAIL_SERVICE or paid_to_person or paid_to_place:
        return DETAIL_SERVICE
    if category == DETAIL_PRODUCT or product_name:
        return DETAIL_PRODUCT
    return DETAIL_UNKNOWN


def resolve_ledger_display_name(ledger_name: str, ledger_id: str) -> str:
    """Rule 6: explicit name, else a placeholder for deleted ledgers."""
    name = _text(ledger_name)
    if name:
        return name
    return ARCHIVED_LEDGER_NAME if _text(ledger_id) else ""


def normalize_spending_detail(
    spending: dict[str, Any],
    ledger_id: str = "",
    ledger_name: str = "",
    catalog: Any = None,
) -> SpendingDetail:
    """Return the canonical detail bundle for a spending row."""
    has_ledger = has_ledger_reference(ledger_id, ledger_name)
    category = _text(spending.get("category")).lower()
    raw_sub_ledger = _text(spending.get("sub_ledger"))
    sub_ledger_catalog = clean_catalog(catalog)
    paid_to_person, paid_to_place = paid_to_fields(spending)

    product_name = initial_product_name(spending, has_ledger, category)
    sub_ledger = raw_sub_ledger
    product_name, sub_ledger = apply_misfiled_product_rule(
        has_ledger, category, product_name, sub_ledger
    )
    product_name, sub_ledger = apply_catalog_mismatch_rule(
        has_ledger, sub_ledger_catalog, raw_sub_ledger, product_name, sub_ledger
    )
    product_name, sub_ledger = apply_bare_sub_ledger_rule(
        has_ledger,
        category,
        product_name,
        raw_sub_ledger,
        paid_to_person,
        paid_to_place,
        sub_ledger,
    )

    return SpendingDetail(
        detail_mode=resolve_detail_mode(
            has_ledger, category, product_name, paid_to_person, paid_to_place
        ),
        ledger_name=resolve_ledger_display_name(ledger_name, ledger_id),
        sub_ledger=sub_ledger,
        product_name=product_name,
        paid_to_person=paid_to_person,
        paid_to_place=paid_to_place,
    )
