"""
Line item arithmetic
Project: Supply Ledger (healthcare supplies ERP)

Discount, VAT and total rules for document lines, and the conversion of
caller supplied items into store rows.

Rules for one line:
- base = quantity * unit_price
- discount = discount_before_vat when given, otherwise discount_percentage of
  the base; never more than the base
- tax exclusive: tax = after_discount * rate, line_total = after_discount + tax
- tax inclusive: line_total = after_discount, tax = after_discount - after_discount / (1 + rate)

Document totals: subtotal = sum(line_total - tax), tax = sum(tax),
total = subtotal + tax.
"""

import uuid
from decimal import Decimal
from typing import Any, Iterable, Optional

from supply_ledger.schemas.document import DocumentTotals, LineItemCreate
from supply_ledger.services.balance_rules import ZERO, to_money

HUNDRED = Decimal("100")

# Item columns that older deployments may not have yet
OPTIONAL_ITEM_COLUMNS = frozenset({"discount_before_vat"})

# Columns never copied when items move from one document to another
_NON_COPYABLE = frozenset({"id", "created_at", "updated_at"})


def calculate_line_item(item: LineItemCreate) -> dict[str, Decimal]:
    """
    Derive the figures of one line.

    Returns:
        dict with base_amount, discount_amount, tax_amount, line_total
    """
    quantity = Decimal(item.quantity)
    unit_price = Decimal(item.unit_price)
    base = quantity * unit_price

    absolute_discount = item.extended.discount_before_vat
    if absolute_discount is not None and absolute_discount > ZERO:
        discount = Decimal(absolute_discount)
    else:
        discount = base * Decimal(item.discount_percentage) / HUNDRED
    discount = min(discount, base) if base > ZERO else ZERO
    after_discount = to_money(base - discount)

    rate = Decimal(item.tax_percentage) / HUNDRED
    if item.tax_inclusive:
        line_total = after_discount
        tax_amount = to_money(after_discount - after_discount / (1 + rate))
    else:
        tax_amount = to_money(after_discount * rate)
        line_total = after_discount + tax_amount

    return {
        "base_amount": to_money(base),
        "discount_amount": to_money(discount),
        "tax_amount": tax_amount,
        "line_total": line_total,
    }


def calculate_document_totals(items: Iterable[Any]) -> DocumentTotals:
    """
    Aggregate line figures into document totals.

    Accepts LineItemCreate objects or already derived item rows
    (mappings with line_total and tax_amount).
    """
    subtotal = ZERO
    discount_total = ZERO
    tax_total = ZERO

    for item in items:
        if isinstance(item, LineItemCreate):
            figures = calculate_line_item(item)
        else:
            figures = {
                "line_total": to_money(item.get("line_total")),
                "tax_amount": to_money(item.get("tax_amount")),
                "discount_amount": ZERO,
            }
        subtotal += figures["line_total"] - figures["tax_amount"]
        tax_total += figures["tax_amount"]
        discount_total += figures["discount_amount"]

    subtotal = to_money(subtotal)
    tax_total = to_money(tax_total)
    return DocumentTotals(
        subtotal=subtotal,
        discount_total=to_money(discount_total),
        tax_total=tax_total,
        total_amount=subtotal + tax_total,
    )


def build_item_rows(
    items: list[LineItemCreate],
    parent_key: str,
    parent_id: uuid.UUID,
) -> list[dict[str, Any]]:
    """
    Turn caller items into store rows: derived tax and total, sort_order
    from the list position, extended fields flattened when set.
    """
    rows = []
    for index, item in enumerate(items, start=1):
        figures = calculate_line_item(item)
        row = {
            parent_key: parent_id,
            "product_id": item.product_id,
            "description": item.description,
            "quantity": Decimal(item.quantity),
            "unit_price": to_money(item.unit_price),
            "discount_percentage": Decimal(item.discount_percentage),
            "tax_percentage": Decimal(item.tax_percentage),
            "tax_amount": figures["tax_amount"],
            "tax_inclusive": item.tax_inclusive,
            "line_total": figures["line_total"],
            "sort_order": index,
        }
        for name, value in item.extended.model_dump(exclude_none=True).items():
            row[name] = value
        rows.append(row)
    return rows


def copy_item_rows(
    rows: list[dict[str, Any]],
    source_key: str,
    target_key: str,
    target_id: uuid.UUID,
) -> list[dict[str, Any]]:
    """Copy stored item rows to a new parent, figures verbatim, sort_order renumbered."""
    copies = []
    for index, row in enumerate(rows, start=1):
        copy = {
            key: value
            for key, value in row.items()
            if key not in _NON_COPYABLE and key != source_key
        }
        copy[target_key] = target_id
        copy["sort_order"] = index
        copies.append(copy)
    return copies


def resolve_totals(
    items: list[LineItemCreate],
    subtotal: Optional[Decimal] = None,
    tax_amount: Optional[Decimal] = None,
    total_amount: Optional[Decimal] = None,
) -> DocumentTotals:
    """
    Totals for a header: derived from the items unless all three figures
    are supplied explicitly.

    Raises:
        ValueError: supplied figures break total = subtotal + tax
    """
    derived = calculate_document_totals(items)
    if subtotal is None or tax_amount is None or total_amount is None:
        return derived

    subtotal, tax_amount, total_amount = to_money(subtotal), to_money(tax_amount), to_money(total_amount)
    if subtotal + tax_amount != total_amount:
        raise ValueError(
            f"total_amount {total_amount} does not equal subtotal {subtotal} + tax {tax_amount}"
        )
    return DocumentTotals(
        subtotal=subtotal,
        discount_total=derived.discount_total,
        tax_total=tax_amount,
        total_amount=total_amount,
    )
