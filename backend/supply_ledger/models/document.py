"""
SQLAlchemy models for sales and purchase documents
Project: Supply Ledger (healthcare supplies ERP)

Contains, each with its line items:
- Quotation / QuotationItem
- Invoice / InvoiceItem
- ProformaInvoice / ProformaItem
- LPO / LPOItem (local purchase orders)
- DeliveryNote / DeliveryNoteItem
- CreditNote / CreditNoteItem

Line items are owned by their header: an update replaces them all.
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import (
    DocumentHeaderMixin,
    LineItemMixin,
    TimestampMixin,
    UUIDMixin,
)


# ------------------------------------------------------------
# Quotations
# ------------------------------------------------------------
class Quotation(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """Customer quotation. Terminal state `converted` once turned into an invoice or proforma."""

    __tablename__ = "quotations"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quotation_number: Mapped[str] = mapped_column(String(50), nullable=False)
    quotation_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("uq_quotations_company_number", "company_id", "quotation_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"Quotation(number={self.quotation_number!r}, status={self.status!r})"


class QuotationItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    __tablename__ = "quotation_items"

    quotation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ------------------------------------------------------------
# Invoices
# ------------------------------------------------------------
class Invoice(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """
    Customer invoice.

    paid_amount and balance_due are a cache of the payment allocation ledger:
    payment flows keep them in step and balance reconciliation rebuilds them.

    Attributes:
        customer_id: Billed customer
        invoice_number: Company-unique number
        invoice_date / due_date: Issue and due dates
        paid_amount: Sum of allocations
        balance_due: total_amount - paid_amount
        affects_inventory: When False no stock movements are recorded
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Billed customer",
    )

    invoice_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Company-unique invoice number",
    )

    invoice_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Issue date",
    )

    due_date: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
        doc="Payment due date",
    )

    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Total allocated payments",
    )

    balance_due: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Outstanding balance",
    )

    affects_inventory: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether the invoice moves stock",
    )

    # ------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------
    __table_args__ = (
        Index("uq_invoices_company_number", "company_id", "invoice_number", unique=True),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_amount"),
    )

    def __repr__(self) -> str:
        return f"Invoice(number={self.invoice_number!r}, status={self.status!r})"


class InvoiceItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ------------------------------------------------------------
# Proforma invoices
# ------------------------------------------------------------
class ProformaInvoice(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """Proforma invoice. Never moves stock; may be converted into an invoice."""

    __tablename__ = "proforma_invoices"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    proforma_number: Mapped[str] = mapped_column(String(50), nullable=False)
    proforma_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("uq_proformas_company_number", "company_id", "proforma_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"ProformaInvoice(number={self.proforma_number!r}, status={self.status!r})"


class ProformaItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    __tablename__ = "proforma_items"

    proforma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("proforma_invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ------------------------------------------------------------
# Local purchase orders
# ------------------------------------------------------------
class LPO(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """Local purchase order issued to a supplier."""

    __tablename__ = "lpos"

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Supplier (stored in the customers table)",
    )
    lpo_number: Mapped[str] = mapped_column(String(50), nullable=False)
    lpo_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    delivery_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("uq_lpos_company_number", "company_id", "lpo_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"LPO(number={self.lpo_number!r}, status={self.status!r})"


class LPOItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    __tablename__ = "lpo_items"

    lpo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("lpos.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ------------------------------------------------------------
# Delivery notes
# ------------------------------------------------------------
class DeliveryNote(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """
    Delivery note. Always backed by an invoice of the same customer.
    """

    __tablename__ = "delivery_notes"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Backing invoice",
    )
    delivery_number: Mapped[str] = mapped_column(String(50), nullable=False)
    delivery_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("uq_delivery_notes_company_number", "company_id", "delivery_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"DeliveryNote(number={self.delivery_number!r}, invoice_id={self.invoice_id})"


class DeliveryNoteItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    """Delivery line. `quantity` mirrors quantity_delivered."""

    __tablename__ = "delivery_note_items"

    delivery_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("delivery_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity_ordered: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    quantity_delivered: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    __table_args__ = (
        CheckConstraint("quantity_delivered > 0", name="ck_delivery_note_items_delivered"),
    )


# ------------------------------------------------------------
# Credit notes
# ------------------------------------------------------------
class CreditNote(Base, UUIDMixin, TimestampMixin, DocumentHeaderMixin):
    """Credit note issued against a customer, optionally returning goods to stock."""

    __tablename__ = "credit_notes"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    credit_note_number: Mapped[str] = mapped_column(String(50), nullable=False)
    credit_note_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    affects_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("uq_credit_notes_company_number", "company_id", "credit_note_number", unique=True),
    )

    def __repr__(self) -> str:
        return f"CreditNote(number={self.credit_note_number!r}, status={self.status!r})"


class CreditNoteItem(Base, UUIDMixin, TimestampMixin, LineItemMixin):
    __tablename__ = "credit_note_items"

    credit_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
