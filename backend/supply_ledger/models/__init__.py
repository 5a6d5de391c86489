"""
SQLAlchemy database models
Project: Supply Ledger (healthcare supplies ERP)

Central import of every model, so that Base.metadata is complete for the
ledger store, table creation and migrations.
"""

# SQLAlchemy 2.0 declarative base
# Defined here so every model module can import it
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for every SQLAlchemy model."""
    pass


from supply_ledger.models.party import Company, Customer
from supply_ledger.models.user import User, UserRole
from supply_ledger.models.inventory import Product, StockMovement
from supply_ledger.models.document import (
    CreditNote,
    CreditNoteItem,
    DeliveryNote,
    DeliveryNoteItem,
    Invoice,
    InvoiceItem,
    LPO,
    LPOItem,
    ProformaInvoice,
    ProformaItem,
    Quotation,
    QuotationItem,
)
from supply_ledger.models.payment import Payment, PaymentAllocation
from supply_ledger.models.audit import AuditLog

__all__ = [
    "Base",
    "Company",
    "Customer",
    "User",
    "UserRole",
    "Product",
    "StockMovement",
    "Quotation",
    "QuotationItem",
    "Invoice",
    "InvoiceItem",
    "ProformaInvoice",
    "ProformaItem",
    "LPO",
    "LPOItem",
    "DeliveryNote",
    "DeliveryNoteItem",
    "CreditNote",
    "CreditNoteItem",
    "Payment",
    "PaymentAllocation",
    "AuditLog",
]
