"""
Server-side procedures of the ledger store
Project: Supply Ledger (healthcare supplies ERP)

Multi-statement operations that must be atomic. The SQLAlchemy store runs each
one inside a single transaction on the session it passes in. Arguments use the
names the client sends (`product_uuid`, `company_uuid`, `p_*`).

Registered procedures:
- update_product_stock
- generate_<type>_number, one per document type
- record_payment_with_allocation
"""

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any, Awaitable, Callable

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from supply_ledger.core.exceptions import StoreError, StoreErrorCode
from supply_ledger.models import Base, Invoice, Payment, PaymentAllocation, Product
from supply_ledger.services.balance_rules import apply_payment_delta, to_money
from supply_ledger.services.document_kinds import DOCUMENT_KINDS, DocumentKind

logger = logging.getLogger(__name__)

Procedure = Callable[..., Awaitable[Any]]

PROCEDURES: dict[str, Procedure] = {}


def procedure(name: str) -> Callable[[Procedure], Procedure]:
    """Register an async `(session, **args)` callable under `name`."""
    def decorator(func_: Procedure) -> Procedure:
        PROCEDURES[name] = func_
        return func_
    return decorator


def _as_uuid(value: Any, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise StoreError(
            f"invalid input syntax for type uuid: \"{value}\" ({label})",
            code=StoreErrorCode.PROCEDURE_FAILED,
        )


def _failed(message: str, hint: str | None = None) -> StoreError:
    return StoreError(message, code=StoreErrorCode.PROCEDURE_FAILED, hint=hint)


# ------------------------------------------------------------
# Stock counter
# ------------------------------------------------------------

@procedure("update_product_stock")
async def update_product_stock(
    session: AsyncSession,
    product_uuid: Any,
    movement_type: str,
    quantity: Any,
) -> dict[str, Any]:
    """
    Move the product stock counter by a non-negative magnitude.

    The direction comes from movement_type alone: IN adds, OUT subtracts.
    """
    magnitude = Decimal(str(quantity))
    if magnitude < 0:
        raise _failed(f"quantity must be a non-negative magnitude, got {magnitude}")

    if movement_type == "IN":
        delta = magnitude
    elif movement_type == "OUT":
        delta = -magnitude
    else:
        raise _failed(
            f"movement_type must be IN or OUT, got {movement_type!r}",
            hint="Send ADJUSTMENT movements with the direction of their sign",
        )

    product_id = _as_uuid(product_uuid, "product_uuid")
    result = await session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + delta)
        .returning(Product.stock_quantity)
    )
    new_level = result.scalar_one_or_none()
    if new_level is None:
        raise _failed(f"Product {product_id} not found")

    return {"product_id": str(product_id), "stock_quantity": new_level}


# ------------------------------------------------------------
# Document numbering
# ------------------------------------------------------------

SEQUENCE_DIGITS = 4


def _numbering_procedure(kind: DocumentKind) -> Procedure:
    """
    Next PREFIX-YYYY-NNNN number for one company and year.

    The highest issued sequence is incremented, so deleting a document never
    frees its number. Fallback numbers (epoch milliseconds) do not match the
    four-digit pattern and are ignored. A transaction-scoped advisory lock
    serialises concurrent callers numbering the same table and year.
    """
    model = _model_for_table(kind.table)
    number_column = getattr(model, kind.number_field)

    async def generate(session: AsyncSession, company_uuid: Any) -> str:
        company_id = _as_uuid(company_uuid, "company_uuid")
        year = datetime.date.today().year
        prefix = f"{kind.prefix}-{year}-"

        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": f"{kind.table}:{company_id}:{year}"},
        )

        last_number = await session.scalar(
            select(number_column)
            .where(
                model.company_id == company_id,
                number_column.regexp_match(f"^{prefix}[0-9]{{{SEQUENCE_DIGITS}}}$"),
            )
            .order_by(number_column.desc())
            .limit(1)
        )
        next_sequence = int(last_number[len(prefix):]) + 1 if last_number else 1
        if next_sequence >= 10 ** SEQUENCE_DIGITS:
            raise _failed(f"{kind.label.capitalize()} numbering exhausted for {year}")
        return f"{prefix}{next_sequence:0{SEQUENCE_DIGITS}d}"

    generate.__name__ = kind.number_procedure
    return generate


def _model_for_table(table_name: str) -> type:
    for mapper in Base.registry.mappers:
        if mapper.local_table.name == table_name:
            return mapper.class_
    raise LookupError(table_name)


for _kind in DOCUMENT_KINDS.values():
    procedure(_kind.number_procedure)(_numbering_procedure(_kind))


# ------------------------------------------------------------
# Payments
# ------------------------------------------------------------

@procedure("record_payment_with_allocation")
async def record_payment_with_allocation(
    session: AsyncSession,
    p_company_id: Any,
    p_customer_id: Any,
    p_invoice_id: Any,
    p_payment_number: str,
    p_payment_date: Any,
    p_amount: Any,
    p_payment_method: str,
    p_reference_number: str | None = None,
    p_notes: str | None = None,
) -> dict[str, Any]:
    """Insert a payment and its allocation and update the invoice balance atomically."""
    company_id = _as_uuid(p_company_id, "p_company_id")
    customer_id = _as_uuid(p_customer_id, "p_customer_id")
    invoice_id = _as_uuid(p_invoice_id, "p_invoice_id")
    amount = to_money(p_amount)

    invoice = await session.get(Invoice, invoice_id)
    if invoice is None or invoice.company_id != company_id:
        raise _failed(f"Invoice {invoice_id} not found for company {company_id}")
    if invoice.customer_id != customer_id:
        raise _failed(f"Invoice {invoice.invoice_number} does not belong to customer {customer_id}")

    payment_date = p_payment_date
    if isinstance(payment_date, str):
        payment_date = datetime.date.fromisoformat(payment_date)

    payment = Payment(
        company_id=company_id,
        customer_id=customer_id,
        payment_number=p_payment_number,
        payment_date=payment_date,
        amount=amount,
        payment_method=p_payment_method,
        reference_number=p_reference_number or p_payment_number,
        notes=p_notes,
    )
    session.add(payment)
    await session.flush()

    session.add(
        PaymentAllocation(payment_id=payment.id, invoice_id=invoice.id, amount_allocated=amount)
    )

    patch = apply_payment_delta(invoice.total_amount, invoice.paid_amount, amount)
    invoice.paid_amount = patch["paid_amount"]
    invoice.balance_due = patch["balance_due"]
    invoice.status = patch["status"]
    await session.flush()

    logger.info(
        "Recorded payment %s of %s on invoice %s (status=%s)",
        payment.payment_number,
        amount,
        invoice.invoice_number,
        invoice.status,
    )

    return {
        "success": True,
        "payment_id": str(payment.id),
        "invoice_id": str(invoice.id),
        "amount_allocated": amount,
        "paid_amount": invoice.paid_amount,
        "balance_due": invoice.balance_due,
        "status": invoice.status,
    }
