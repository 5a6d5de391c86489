"""
Invoice balance rules
Project: Supply Ledger (healthcare supplies ERP)

Pure functions shared by the payment service, balance reconciliation and the
record_payment_with_allocation procedure, so that every path derives the
invoice status the same way.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """Convert a store value (Decimal, int, float, str or None) to a 2-decimal Decimal."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def derive_invoice_status(paid_amount: Decimal, balance_due: Decimal) -> str:
    """
    Three-way invoice status rule.

    - balance_due <= 0 and paid_amount != 0 → "paid" (overpayment included)
    - paid_amount != 0 and balance_due > 0 → "partial"
    - paid_amount == 0 → "draft"

    A full reversal therefore demotes a previously "sent" invoice to "draft".
    """
    if paid_amount != ZERO and balance_due <= ZERO:
        return "paid"
    if paid_amount != ZERO:
        return "partial"
    return "draft"


def apply_payment_delta(
    total_amount: Any,
    paid_amount: Any,
    delta: Any,
    floor_at_zero: bool = False,
) -> dict[str, Any]:
    """
    Compute the invoice fields after adding `delta` to the paid amount.

    Args:
        total_amount: Invoice total
        paid_amount: Current paid amount (None treated as 0)
        delta: Signed change (negative for reversals)
        floor_at_zero: Clamp the new paid amount at 0 (payment reversals)

    Returns:
        Patch with paid_amount, balance_due and status
    """
    total = to_money(total_amount)
    new_paid = to_money(paid_amount) + to_money(delta)
    if floor_at_zero and new_paid < ZERO:
        new_paid = ZERO.quantize(CENT)
    balance = total - new_paid
    return {
        "paid_amount": new_paid,
        "balance_due": balance,
        "status": derive_invoice_status(new_paid, balance),
    }
