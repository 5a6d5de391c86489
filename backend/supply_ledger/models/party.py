"""
SQLAlchemy models for companies and counterparties
Project: Supply Ledger (healthcare supplies ERP)

Contains:
- Company: tenant owning every document and ledger row
- Customer: counterparty record (suppliers selected on LPOs share this table)
"""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import TimestampMixin, UUIDMixin


class Company(Base, UUIDMixin, TimestampMixin):
    """Tenant company."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tax_pin: Mapped[str | None] = mapped_column(String(50), nullable=True, doc="KRA PIN")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")

    def __repr__(self) -> str:
        return f"Company(name={self.name!r})"


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Counterparty record.

    The same row is used when the counterparty is selected as an LPO supplier,
    which is why supplier selection is validated against the customer-side
    invoice history.

    Attributes:
        company_id: Owning company
        name: Display name
        email / phone / address: Contact details
    """

    __tablename__ = "customers"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Owning company",
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, doc="Display name")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_customers_company_name", "company_id", "name"),
    )

    def __repr__(self) -> str:
        return f"Customer(name={self.name!r}, company_id={self.company_id})"
