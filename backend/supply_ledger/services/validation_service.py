"""
Service Layer for pre-write validation
Project: Supply Ledger (healthcare supplies ERP)

Validations that never raise: they return a ValidationResult whose errors
block the operation and whose warnings are shown to the user.

- supplier selection on LPOs (customers and suppliers share one table)
- LPO payload and LPO edit checks
- delivery note payload checks
- UUID helpers
"""

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from supply_ledger.core.config import settings
from supply_ledger.core.exceptions import StoreError, ValidationError
from supply_ledger.schemas.common import ValidationResult, WarningSeverity, make_warning
from supply_ledger.schemas.document import DeliveryNoteCreate, LPOCreate, LPOStatus
from supply_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

LPO_EARLIEST_DATE = datetime.date(2020, 1, 1)
MAX_ITEM_QUANTITY = Decimal("999999")
MAX_UNIT_PRICE = Decimal("99999999")


def is_valid_uuid(value: Any) -> bool:
    """True for a canonical 36 character UUID string (or a UUID object)."""
    if isinstance(value, uuid.UUID):
        return True
    if not isinstance(value, str) or len(value) != 36:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def require_uuid(value: Any, label: str) -> uuid.UUID:
    """
    Parse an id supplied by the caller.

    Raises:
        ValidationError: "Invalid <label>" for anything but a canonical UUID
    """
    if not is_valid_uuid(value):
        raise ValidationError(f"Invalid {label}", extra={"field": label, "value": str(value)})
    return value if isinstance(value, uuid.UUID) else uuid.UUID(value)


def _one_year_after(day: datetime.date) -> datetime.date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # 29 February
        return day.replace(year=day.year + 1, day=28)


class ValidationService:
    """Non-raising validations run before document writes."""

    # -------------------------------------------------------------------
    # Customer / supplier conflicts
    # -------------------------------------------------------------------

    async def validate_supplier_selection(
        self,
        store: LedgerStore,
        supplier_id: uuid.UUID,
        company_id: uuid.UUID,
        supplier_name: Optional[str] = None,
        is_newly_created: bool = False,
    ) -> ValidationResult:
        """
        Check whether the counterparty chosen as supplier is also a customer.

        Tiers on the number of invoices the entity has as a customer:
        block threshold or more is an error, warning threshold or more is a
        moderate warning, anything else above zero is a minor warning.
        A counterparty created in the current session is not checked.

        A store failure produces an invalid result instead of raising.
        """
        result = ValidationResult()
        name = supplier_name or "This entity"

        try:
            invoices = await store.select(
                "invoices",
                columns=["id"],
                filters={"customer_id": supplier_id, "company_id": company_id},
            )
            lpos = await store.select(
                "lpos",
                columns=["id"],
                filters={"supplier_id": supplier_id, "company_id": company_id},
            )
        except StoreError as e:
            logger.error("Supplier conflict check failed for %s: %s", supplier_id, e.describe())
            result.is_valid = False
            result.errors.append("Unable to validate supplier selection due to a database error")
            return result

        invoice_count = len(invoices)
        lpo_count = len(lpos)
        has_customer_history = invoice_count > 0 and not is_newly_created

        if has_customer_history:
            if invoice_count >= settings.supplier_conflict_block_threshold:
                result.errors.append(
                    f'Critical conflict: "{name}" has {invoice_count} invoices as a customer. '
                    "Create a separate supplier record or contact your administrator."
                )
            elif invoice_count >= settings.supplier_conflict_warning_threshold:
                result.warnings.append(make_warning(
                    "SUPPLIER_CONFLICT",
                    f'Moderate conflict: "{name}" has {invoice_count} invoice(s) as a customer. '
                    "Consider creating a separate supplier record to avoid confusion.",
                    WarningSeverity.MODERATE,
                    invoice_count=invoice_count,
                ))
            else:
                result.warnings.append(make_warning(
                    "SUPPLIER_CONFLICT",
                    f'Minor conflict: "{name}" has {invoice_count} invoice(s) as a customer. '
                    "This is generally acceptable.",
                    WarningSeverity.MINOR,
                    invoice_count=invoice_count,
                ))

            if invoice_count >= settings.supplier_conflict_warning_threshold:
                result.warnings.append(make_warning(
                    "SUPPLIER_RECORD_TIP",
                    f'Create a supplier record named "{supplier_name or name} (Supplier)" '
                    "to keep the relationships separate.",
                    WarningSeverity.INFO,
                ))

        if has_customer_history or lpo_count > 0:
            result.warnings.append(make_warning(
                "SHARED_COUNTERPARTY_TABLE",
                "Suppliers are stored in the same table as customers.",
                WarningSeverity.INFO,
            ))

        result.is_valid = not result.errors
        result.conflict_data = {
            "entity_id": str(supplier_id),
            "entity_name": supplier_name or "Unknown",
            "customer_invoice_count": invoice_count,
            "supplier_lpo_count": lpo_count,
        }
        return result

    async def get_entity_conflict_summary(
        self,
        store: LedgerStore,
        entity_id: uuid.UUID,
        company_id: uuid.UUID,
    ) -> dict[str, Any]:
        """
        Counts and latest dates of an entity as customer and as supplier.

        Raises:
            StoreError: the store could not be read
        """
        invoices = await store.select(
            "invoices",
            columns=["id", "invoice_date"],
            filters={"customer_id": entity_id, "company_id": company_id},
            order_by=["-invoice_date"],
        )
        lpos = await store.select(
            "lpos",
            columns=["id", "lpo_date"],
            filters={"supplier_id": entity_id, "company_id": company_id},
            order_by=["-lpo_date"],
        )
        return {
            "as_customer": {
                "invoice_count": len(invoices),
                "last_invoice_date": invoices[0]["invoice_date"] if invoices else None,
            },
            "as_supplier": {
                "lpo_count": len(lpos),
                "last_lpo_date": lpos[0]["lpo_date"] if lpos else None,
            },
            "has_conflict": bool(invoices) and bool(lpos),
        }

    # -------------------------------------------------------------------
    # LPO
    # -------------------------------------------------------------------

    def validate_lpo_data(
        self,
        data: LPOCreate,
        today: Optional[datetime.date] = None,
    ) -> ValidationResult:
        """Required fields, date window and per-item bounds of an LPO."""
        today = today or datetime.date.today()
        errors: list[str] = []

        if data.supplier_id is None:
            errors.append("Supplier is required")
        if data.lpo_date is None:
            errors.append("LPO date is required")
        if not data.items:
            errors.append("At least one item is required")

        if data.lpo_date is not None:
            if data.lpo_date < LPO_EARLIEST_DATE:
                errors.append("LPO date cannot be before 2020")
            if data.lpo_date > _one_year_after(today):
                errors.append("LPO date cannot be more than one year in the future")

        for index, item in enumerate(data.items, start=1):
            prefix = f"Item {index}:"
            if item.product_id is None:
                errors.append(f"{prefix} Product selection is required")
            if not item.description.strip():
                errors.append(f"{prefix} Description is required")
            if item.quantity <= 0:
                errors.append(f"{prefix} Quantity must be greater than 0")
            if item.quantity > MAX_ITEM_QUANTITY:
                errors.append(f"{prefix} Quantity cannot exceed 999,999")
            if item.unit_price < 0:
                errors.append(f"{prefix} Unit price cannot be negative")
            if item.unit_price > MAX_UNIT_PRICE:
                errors.append(f"{prefix} Unit price cannot exceed 99,999,999")

        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_lpo_update(
        self,
        data: LPOCreate,
        current_status: Optional[str],
        today: Optional[datetime.date] = None,
    ) -> ValidationResult:
        """validate_lpo_data plus the status lock on received and cancelled LPOs."""
        result = self.validate_lpo_data(data, today=today)
        if current_status == LPOStatus.RECEIVED.value:
            result.errors.append("Cannot edit a received LPO")
        if current_status == LPOStatus.CANCELLED.value:
            result.errors.append("Cannot edit a cancelled LPO")
        result.is_valid = not result.errors
        return result

    # -------------------------------------------------------------------
    # Delivery notes
    # -------------------------------------------------------------------

    def validate_delivery_note_data(
        self,
        company_id: Optional[uuid.UUID],
        data: DeliveryNoteCreate,
    ) -> ValidationResult:
        """Required fields of a delivery note. Quantities are checked against the invoice later."""
        errors: list[str] = []
        warnings = []

        if company_id is None:
            errors.append("Company ID is required")
        if data.customer_id is None:
            errors.append("Customer ID is required")
        if data.invoice_id is None:
            errors.append("Invoice ID is required - delivery notes must be backed by a sale")
        if data.delivery_date is None:
            errors.append("Delivery date is required")
        if not data.delivery_address:
            warnings.append(make_warning(
                "DELIVERY_ADDRESS_MISSING",
                "Delivery address is recommended",
                WarningSeverity.INFO,
            ))
        if not data.items:
            errors.append("At least one delivery item is required")

        for index, item in enumerate(data.items, start=1):
            if item.quantity_delivered <= 0:
                errors.append(f"Item {index}: Delivered quantity must be greater than 0")
            elif item.quantity_ordered is not None and item.quantity_delivered > item.quantity_ordered:
                warnings.append(make_warning(
                    "DELIVERED_EXCEEDS_ORDERED",
                    f"Item {index}: Delivered quantity ({item.quantity_delivered}) "
                    f"exceeds ordered quantity ({item.quantity_ordered})",
                    WarningSeverity.MINOR,
                    product_id=str(item.product_id),
                ))

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# Global service instance
validation_service = ValidationService()
