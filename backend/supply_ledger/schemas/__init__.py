"""
Pydantic schemas for the Supply Ledger project

Validation of service inputs and serialization of API responses.
"""

# Schemas re-exported for direct import
# e.g.: from supply_ledger.schemas import InvoiceCreate, Outcome

from supply_ledger.schemas.common import (
    OperationWarning,
    Outcome,
    ValidationResult,
    WarningSeverity,
    make_warning,
)
from supply_ledger.schemas.document import (
    ConversionRequest,
    CreditNoteCreate,
    DeliveryItemCreate,
    DeliveryNoteCreate,
    DocumentTotals,
    DocumentType,
    InvoiceCreate,
    LineItemCreate,
    LineItemExtended,
    LPOCreate,
    ProformaCreate,
    QuotationCreate,
    StatusUpdate,
)
from supply_ledger.schemas.inventory import (
    MovementType,
    ReferenceType,
    RestockRequest,
    StockMovementCreate,
    StockMovementRead,
    StockReconciliationReport,
)
from supply_ledger.schemas.payment import (
    PaymentCreate,
    PaymentDeletion,
    PaymentMethod,
    PaymentPath,
    PaymentResult,
    ReconciliationReport,
)
from supply_ledger.schemas.token import TokenPayload

__all__ = [
    # Common
    "OperationWarning",
    "Outcome",
    "ValidationResult",
    "WarningSeverity",
    "make_warning",
    # Documents
    "ConversionRequest",
    "CreditNoteCreate",
    "DeliveryItemCreate",
    "DeliveryNoteCreate",
    "DocumentTotals",
    "DocumentType",
    "InvoiceCreate",
    "LineItemCreate",
    "LineItemExtended",
    "LPOCreate",
    "ProformaCreate",
    "QuotationCreate",
    "StatusUpdate",
    # Inventory
    "MovementType",
    "ReferenceType",
    "RestockRequest",
    "StockMovementCreate",
    "StockMovementRead",
    "StockReconciliationReport",
    # Payments
    "PaymentCreate",
    "PaymentDeletion",
    "PaymentMethod",
    "PaymentPath",
    "PaymentResult",
    "ReconciliationReport",
    # Auth
    "TokenPayload",
]
