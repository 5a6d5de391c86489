"""
SQLAlchemy models for products and the stock ledger
Project: Supply Ledger (healthcare supplies ERP)

Contains:
- Product: catalogue item with the denormalised stock counter
- StockMovement: append-only stock ledger entry
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import TimestampMixin, UUIDMixin


class Product(Base, UUIDMixin, TimestampMixin):
    """
    Catalogue product.

    Attributes:
        company_id: Owning company
        product_code: Company-unique code
        name: Display name
        unit_of_measure: e.g. "box", "pcs"
        selling_price / cost_price: Default prices
        stock_quantity: Running total of the stock ledger. Written by the
            update_product_stock procedure and healed by stock reconciliation;
            it must equal the signed sum of the product's movements.
        minimum_stock_level: Reorder threshold
    """

    __tablename__ = "products"

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

    product_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Company-unique product code",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Product name",
    )

    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pcs",
        doc="Unit of measure",
    )

    selling_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Default selling price",
    )

    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Default cost price",
    )

    stock_quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        default=Decimal("0"),
        doc="Denormalised stock counter",
    )

    minimum_stock_level: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        default=Decimal("0"),
        doc="Reorder threshold",
    )

    # ------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------
    __table_args__ = (
        Index("uq_products_company_code", "company_id", "product_code", unique=True),
    )

    @property
    def is_below_minimum(self) -> bool:
        """True when the stock is below the reorder threshold."""
        return self.stock_quantity < self.minimum_stock_level

    def __repr__(self) -> str:
        return f"Product(code={self.product_code!r}, name={self.name!r})"


class StockMovement(Base, UUIDMixin, TimestampMixin):
    """
    Stock ledger entry.

    Never updated or deleted: corrections are compensating movements.

    Attributes:
        company_id: Owning company
        product_id: Product moved
        movement_type: IN, OUT or ADJUSTMENT
        reference_type: INVOICE, DELIVERY_NOTE, CREDIT_NOTE, RESTOCK or ADJUSTMENT
        reference_id: Originating document (null for manual restocks)
        quantity: Signed quantity (OUT rows negative)
        cost_per_unit: Optional unit cost
        notes: Free text, reversals name the original document
    """

    __tablename__ = "stock_movements"

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

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        doc="Product moved",
    )

    movement_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="IN, OUT or ADJUSTMENT",
    )

    reference_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Kind of originating event",
    )

    reference_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        doc="Originating document id",
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        doc="Signed quantity",
    )

    cost_per_unit: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Unit cost",
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Notes",
    )

    # ------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------
    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('IN', 'OUT', 'ADJUSTMENT')",
            name="ck_stock_movements_type",
        ),
        CheckConstraint(
            "reference_type IN ('INVOICE', 'DELIVERY_NOTE', 'CREDIT_NOTE', 'RESTOCK', 'ADJUSTMENT')",
            name="ck_stock_movements_reference_type",
        ),
        Index("ix_stock_movements_reference", "reference_type", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"StockMovement(product_id={self.product_id}, type={self.movement_type}, "
            f"quantity={self.quantity})"
        )
