"""
SQLAlchemy models for payments
Project: Supply Ledger (healthcare supplies ERP)

Contains:
- Payment: money received from a customer
- PaymentAllocation: the part of a payment applied to one invoice

The allocation table is the source of truth for invoice paid amounts.
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import TimestampMixin, UUIDMixin


class Payment(Base, UUIDMixin, TimestampMixin):
    """
    Customer payment.

    Attributes:
        company_id: Owning company
        customer_id: Paying customer
        payment_number: Receipt number
        payment_date: Date received
        amount: Amount received
        payment_method: cash, bank_transfer, mpesa, cheque, card, other
        reference_number: Bank / mobile money reference
        notes: Free text
    """

    __tablename__ = "payments"

    # ------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Owning company",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Paying customer",
    )

    payment_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Receipt number",
    )

    payment_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Date received",
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="Amount received",
    )

    payment_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Payment method",
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="External reference",
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Notes",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount"),
    )

    def __repr__(self) -> str:
        return f"Payment(number={self.payment_number!r}, amount={self.amount})"


class PaymentAllocation(Base, UUIDMixin, TimestampMixin):
    """
    Allocation of a payment to an invoice.

    Invoices with allocations cannot be deleted (RESTRICT); deleting a payment
    goes through the payment service so the invoice is reversed first.
    """

    __tablename__ = "payment_allocations"

    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Allocated payment",
    )

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Target invoice",
    )

    amount_allocated: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="Amount applied to the invoice",
    )

    __table_args__ = (
        CheckConstraint("amount_allocated > 0", name="ck_payment_allocations_amount"),
        Index("ix_payment_allocations_invoice_payment", "invoice_id", "payment_id"),
    )

    def __repr__(self) -> str:
        return (
            f"PaymentAllocation(payment_id={self.payment_id}, invoice_id={self.invoice_id}, "
            f"amount={self.amount_allocated})"
        )
