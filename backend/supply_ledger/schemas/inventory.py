"""
Pydantic schemas for the stock ledger
Project: Supply Ledger (healthcare supplies ERP)
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MovementType(str, Enum):
    """Direction of a stock movement."""
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class ReferenceType(str, Enum):
    """Event that originated a stock movement."""
    INVOICE = "INVOICE"
    DELIVERY_NOTE = "DELIVERY_NOTE"
    CREDIT_NOTE = "CREDIT_NOTE"
    RESTOCK = "RESTOCK"
    ADJUSTMENT = "ADJUSTMENT"


class StockMovementCreate(BaseModel):
    """
    Movement to append to the ledger.

    `quantity` is signed the way it is stored: OUT movements are negative.
    A positive quantity on an OUT movement is normalised to negative, and a
    negative one on an IN movement to positive.
    """

    product_id: uuid.UUID = Field(..., description="Product moved")
    movement_type: MovementType = Field(..., description="IN, OUT or ADJUSTMENT")
    reference_type: ReferenceType = Field(..., description="Originating event")
    reference_id: Optional[uuid.UUID] = Field(None, description="Originating document")
    quantity: Decimal = Field(..., description="Quantity")
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("quantity cannot be zero")
        return v

    def signed_quantity(self) -> Decimal:
        if self.movement_type == MovementType.OUT:
            return -abs(self.quantity)
        if self.movement_type == MovementType.IN:
            return abs(self.quantity)
        return self.quantity


class RestockRequest(BaseModel):
    """Manual restock of a product."""

    quantity: Decimal = Field(..., gt=0, description="Quantity received")
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class StockMovementRead(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    product_id: uuid.UUID
    movement_type: MovementType
    reference_type: ReferenceType
    reference_id: Optional[uuid.UUID] = None
    quantity: Decimal
    cost_per_unit: Optional[Decimal] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StockDiscrepancy(BaseModel):
    product_id: uuid.UUID
    recorded_quantity: Decimal
    ledger_quantity: Decimal


class StockReconciliationReport(BaseModel):
    """Outcome of the stock reconciliation sweep."""

    checked: int = 0
    mismatched: int = 0
    fixed: int = 0
    discrepancies: list[StockDiscrepancy] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
