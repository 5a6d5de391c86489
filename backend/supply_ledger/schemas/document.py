"""
Pydantic schemas for documents and line items
Project: Supply Ledger (healthcare supplies ERP)

Input schemas are a tagged variant per document type: each has its own
counterparty, date and status fields, and every line item carries an
optional `extended` sub-structure for columns that may not exist in every
deployment yet.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentType(str, Enum):
    """Document types handled by the lifecycle manager."""
    QUOTATION = "quotation"
    INVOICE = "invoice"
    PROFORMA = "proforma"
    LPO = "lpo"
    DELIVERY_NOTE = "delivery_note"
    CREDIT_NOTE = "credit_note"


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class InvoiceStatus(str, Enum):
    """Stored invoice status. `overdue` is derived from due_date by readers."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class ProformaStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class LPOStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class DeliveryNoteStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CreditNoteStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    APPLIED = "applied"
    CANCELLED = "cancelled"


# -------------------------------------------------------------------
# Line items
# -------------------------------------------------------------------

class LineItemExtended(BaseModel):
    """Optional extended columns. Dropped, with a warning, on stores that lack them."""

    discount_before_vat: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Absolute discount applied before VAT",
    )


class LineItemCreate(BaseModel):
    """Line item as supplied by the caller. Totals are derived, sort_order is assigned."""

    product_id: Optional[uuid.UUID] = Field(
        None,
        description="Catalogue product (None for free-text lines)",
    )
    description: str = Field(
        "",
        max_length=500,
        description="Line description",
    )
    quantity: Decimal = Field(
        ...,
        description="Quantity (expected > 0)",
    )
    unit_price: Decimal = Field(
        Decimal("0"),
        description="Unit price (expected >= 0)",
    )
    discount_percentage: Decimal = Field(
        Decimal("0"),
        ge=0,
        le=100,
        description="Percentage discount",
    )
    tax_percentage: Decimal = Field(
        Decimal("0"),
        ge=0,
        le=100,
        description="VAT percentage",
    )
    tax_inclusive: bool = Field(
        False,
        description="True when unit_price already includes VAT",
    )
    extended: LineItemExtended = Field(
        default_factory=LineItemExtended,
        description="Optional extended fields",
    )

    model_config = ConfigDict(from_attributes=True)


class DeliveryItemCreate(BaseModel):
    """Delivered line of a delivery note."""

    product_id: uuid.UUID = Field(..., description="Delivered product")
    description: str = Field("", max_length=500)
    quantity_ordered: Optional[Decimal] = Field(
        None,
        description="Quantity ordered by the customer",
    )
    quantity_delivered: Decimal = Field(
        ...,
        description="Quantity delivered",
    )
    unit_price: Decimal = Field(Decimal("0"))


# -------------------------------------------------------------------
# Headers
# -------------------------------------------------------------------

class DocumentBase(BaseModel):
    """Fields every document header accepts."""

    notes: Optional[str] = Field(None, description="Free-text notes")
    terms_and_conditions: Optional[str] = Field(None, description="Terms printed on the document")
    number: Optional[str] = Field(
        None,
        max_length=50,
        description="Document number; generated when omitted",
    )
    subtotal: Optional[Decimal] = Field(None, description="Override of the derived subtotal")
    tax_amount: Optional[Decimal] = Field(None, description="Override of the derived tax")
    total_amount: Optional[Decimal] = Field(None, description="Override of the derived total")
    items: list[LineItemCreate] = Field(default_factory=list, description="Ordered line items")


class QuotationCreate(DocumentBase):
    customer_id: Optional[uuid.UUID] = Field(None, description="Quoted customer")
    quotation_date: datetime.date = Field(default_factory=datetime.date.today)
    valid_until: Optional[datetime.date] = None
    status: QuotationStatus = QuotationStatus.DRAFT


class InvoiceCreate(DocumentBase):
    customer_id: Optional[uuid.UUID] = Field(None, description="Billed customer")
    invoice_date: datetime.date = Field(default_factory=datetime.date.today)
    due_date: Optional[datetime.date] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    affects_inventory: Optional[bool] = Field(
        None,
        description="Stock moves unless explicitly False",
    )


class ProformaCreate(DocumentBase):
    customer_id: Optional[uuid.UUID] = Field(None, description="Customer")
    proforma_date: datetime.date = Field(default_factory=datetime.date.today)
    valid_until: Optional[datetime.date] = None
    status: ProformaStatus = ProformaStatus.DRAFT


class LPOCreate(DocumentBase):
    supplier_id: Optional[uuid.UUID] = Field(None, description="Supplier")
    lpo_date: Optional[datetime.date] = Field(default_factory=datetime.date.today)
    delivery_date: Optional[datetime.date] = None
    delivery_address: Optional[str] = None
    contact_person: Optional[str] = None
    status: LPOStatus = LPOStatus.DRAFT
    supplier_name: Optional[str] = Field(None, description="Used in conflict messages")
    supplier_newly_created: bool = Field(
        False,
        description="Skip the customer-history conflict check for a supplier created in this session",
    )


class DeliveryNoteCreate(BaseModel):
    customer_id: Optional[uuid.UUID] = None
    invoice_id: Optional[uuid.UUID] = Field(None, description="Backing invoice (required)")
    delivery_date: Optional[datetime.date] = Field(default_factory=datetime.date.today)
    delivery_address: Optional[str] = None
    delivery_method: Optional[str] = None
    received_by: Optional[str] = None
    number: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    status: DeliveryNoteStatus = DeliveryNoteStatus.PENDING
    items: list[DeliveryItemCreate] = Field(default_factory=list)


class CreditNoteCreate(DocumentBase):
    customer_id: Optional[uuid.UUID] = Field(None, description="Credited customer")
    invoice_id: Optional[uuid.UUID] = Field(None, description="Invoice being credited")
    credit_note_date: datetime.date = Field(default_factory=datetime.date.today)
    reason: Optional[str] = None
    affects_inventory: bool = Field(False, description="Return goods to stock")
    status: CreditNoteStatus = CreditNoteStatus.DRAFT


class StatusUpdate(BaseModel):
    """Status change for quotations and proformas."""

    status: str = Field(..., description="New status")
    note: Optional[str] = Field(None, description="Reason appended to the document notes")

    @field_validator("status")
    @classmethod
    def normalise_status(cls, v: str) -> str:
        return v.strip().lower()


class ConversionRequest(BaseModel):
    """Options for converting a quotation or proforma."""

    document_date: Optional[datetime.date] = Field(None, description="Date of the new document")
    due_date: Optional[datetime.date] = Field(None, description="Due date when converting to an invoice")
    valid_until: Optional[datetime.date] = Field(None, description="Validity when converting to a proforma")


class DocumentTotals(BaseModel):
    """Aggregated document figures."""

    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    total_amount: Decimal
