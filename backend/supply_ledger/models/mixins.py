"""
SQLAlchemy mixins
Project: Supply Ledger (healthcare supplies ERP)

Reusable mixins adding common columns to the models:
- UUIDMixin / TimestampMixin: identity and audit timestamps
- DocumentHeaderMixin: the columns every sales/purchase document shares
- LineItemMixin: the columns every document line shares
"""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy import event
from sqlalchemy.orm import Mapped, mapped_column, Session
from sqlalchemy.sql import func


class TimestampMixin:
    """
    Automatic creation and update timestamps.

    Adds:
    - created_at: set by the database on insert
    - updated_at: refreshed on every ORM flush and Core UPDATE
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Creation timestamp",
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Last update timestamp",
    )


class UUIDMixin:
    """
    UUID primary key generated on insert.

    Usage:
        class MyModel(Base, UUIDMixin):
            __tablename__ = "my_table"
            ...
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="UUID primary key",
    )


class DocumentHeaderMixin:
    """
    Columns shared by every document header.

    The per-type number and date columns (invoice_number, quotation_date, ...)
    and the counterparty reference are declared on each model.
    """

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Owning company",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        index=True,
        doc="Lifecycle status (value set depends on the document type)",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Net amount after discounts, before tax",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Total tax",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="subtotal + tax_amount",
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Free-text notes",
    )

    terms_and_conditions: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Terms printed on the document",
    )

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        doc="User who created the document (null when unknown)",
    )


class LineItemMixin:
    """
    Columns shared by every document line.

    The parent reference (invoice_id, quotation_id, ...) is declared on each model.
    """

    product_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        doc="Catalogue product (null for free-text lines)",
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
        doc="Line description",
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        doc="Quantity",
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Unit price",
    )

    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Percentage discount",
    )

    discount_before_vat: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Absolute discount applied before VAT (optional extended column)",
    )

    tax_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        doc="VAT percentage",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="VAT amount of the line",
    )

    tax_inclusive: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="True when unit_price already includes VAT",
    )

    line_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Line total including VAT",
    )

    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="1-based position of the line in the document",
    )


# ------------------------------------------------------------
# Event Listeners
# ------------------------------------------------------------
@event.listens_for(Session, "before_flush")
def update_timestamp(session: Session, flush_context, instances) -> None:
    """
    Refresh updated_at on modified ORM objects before every flush.

    Server-side procedures work through the ORM; Core UPDATE statements issued
    by the ledger store are covered by the column's onupdate instead.
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    for obj in session.dirty:
        if hasattr(obj, "updated_at") and session.is_modified(obj, include_collections=False):
            obj.updated_at = now
