"""
Pydantic schemas for payments and balance reconciliation
Project: Supply Ledger (healthcare supplies ERP)
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """Supported payment methods."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MPESA = "mpesa"
    CHEQUE = "cheque"
    CARD = "card"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """
    Payment against one invoice.

    Ids are plain strings on purpose: malformed ids are reported by the
    payment service as "Invalid <field>" before any store call.
    """

    company_id: str = Field(..., description="Company id")
    customer_id: str = Field(..., description="Paying customer id")
    invoice_id: str = Field(..., description="Invoice the payment is allocated to")
    amount: Decimal = Field(..., gt=0, description="Amount received")
    payment_method: PaymentMethod = Field(PaymentMethod.CASH)
    payment_date: datetime.date = Field(default_factory=datetime.date.today)
    payment_number: Optional[str] = Field(None, max_length=50, description="Receipt number")
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentPath(str, Enum):
    """How a payment was recorded."""
    ATOMIC = "atomic"
    FALLBACK = "fallback"


class PaymentResult(BaseModel):
    """Describes which path recorded the payment and what degraded."""

    payment_id: uuid.UUID
    invoice_id: uuid.UUID
    amount_allocated: Decimal
    path: PaymentPath
    fallback_used: bool = False
    allocation_failed: bool = False
    invoice_updated: bool = True
    paid_amount: Optional[Decimal] = None
    balance_due: Optional[Decimal] = None
    status: Optional[str] = None


class PaymentDeletion(BaseModel):
    payment_id: uuid.UUID
    allocations_reversed: int
    invoices: list[dict] = Field(default_factory=list, description="Invoice patches applied")


class BalanceDiscrepancy(BaseModel):
    invoice_id: uuid.UUID
    invoice_number: Optional[str] = None
    stored_paid_amount: Decimal
    stored_balance_due: Decimal
    stored_status: Optional[str] = None
    ledger_paid_amount: Decimal
    expected_balance_due: Decimal
    expected_status: str


class ReconciliationReport(BaseModel):
    """Counts returned by the balance reconciliation sweep."""

    checked: int = 0
    mismatched: int = 0
    fixed: int = 0
    discrepancies: list[BalanceDiscrepancy] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
