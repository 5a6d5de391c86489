"""
Service Layer for the document lifecycle
Project: Supply Ledger (healthcare supplies ERP)

Create, edit, convert, change status and delete quotations, invoices,
proforma invoices and LPOs.

Every write follows the same order: validate, number, header, items, stock.
Steps after the header are never rolled back; side effects that fail
without losing data are returned as warnings on the Outcome.
"""

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from supply_ledger.core.exceptions import (
    ConflictError,
    StoreError,
    ValidationError,
    raise_classified,
)
from supply_ledger.core.permissions import Actor
from supply_ledger.schemas.common import OperationWarning, Outcome, WarningSeverity, make_warning
from supply_ledger.schemas.document import (
    ConversionRequest,
    DocumentBase,
    DocumentTotals,
    DocumentType,
    InvoiceCreate,
    InvoiceStatus,
    LPOCreate,
    ProformaCreate,
    ProformaStatus,
    QuotationCreate,
    QuotationStatus,
    StatusUpdate,
)
from supply_ledger.schemas.inventory import MovementType, ReferenceType
from supply_ledger.services.balance_rules import ZERO, derive_invoice_status, to_money
from supply_ledger.services.document_kinds import (
    INVOICE,
    LPO,
    PROFORMA,
    QUOTATION,
    DocumentKind,
    get_kind,
)
from supply_ledger.services.document_writer import DocumentWriter
from supply_ledger.services.line_items import build_item_rows, copy_item_rows, resolve_totals
from supply_ledger.services.numbering_service import numbering_service
from supply_ledger.services.stock_ledger_service import document_movements, stock_ledger_service
from supply_ledger.services.validation_service import validation_service
from supply_ledger.store.base import LedgerStore, Row

logger = logging.getLogger(__name__)

CONVERTED = "converted"

# Statuses a caller may set through update_document_status
_STATUS_ENUMS = {
    DocumentType.QUOTATION: QuotationStatus,
    DocumentType.PROFORMA: ProformaStatus,
}


def _resolve_totals(data: DocumentBase) -> DocumentTotals:
    try:
        return resolve_totals(data.items, data.subtotal, data.tax_amount, data.total_amount)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _invoice_status(requested: InvoiceStatus, paid: Decimal, balance: Decimal) -> str:
    """Payment driven statuses always come from the balance rule."""
    if paid != ZERO or requested in (InvoiceStatus.PARTIAL, InvoiceStatus.PAID):
        return derive_invoice_status(paid, balance)
    return requested.value


class DocumentService(DocumentWriter):
    """
    Lifecycle of sales and purchase documents.

    Implements:
    - create and update-with-items for every type
    - quotation to invoice / proforma and proforma to invoice conversion
    - status changes with an audit note
    - audited deletes behind per-type permissions
    """

    # -------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------

    async def create_quotation(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: QuotationCreate,
    ) -> Outcome[dict[str, Any]]:
        fields = {
            "quotation_date": data.quotation_date,
            "valid_until": data.valid_until,
            "status": data.status.value,
        }
        return await self._create(store, QUOTATION, company_id, actor, data, data.customer_id, fields)

    async def create_proforma(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: ProformaCreate,
    ) -> Outcome[dict[str, Any]]:
        fields = {
            "proforma_date": data.proforma_date,
            "valid_until": data.valid_until,
            "status": data.status.value,
        }
        return await self._create(store, PROFORMA, company_id, actor, data, data.customer_id, fields)

    async def create_invoice(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: InvoiceCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Create an invoice and, unless affects_inventory is False, move stock
        out for every catalogue line.

        Raises:
            ValidationError: unknown customer or product, inconsistent totals
            ConflictError: header, items or stock movements rejected by the store
        """
        totals = _resolve_totals(data)
        paid = to_money(ZERO)
        affects_inventory = data.affects_inventory is not False
        fields = {
            "invoice_date": data.invoice_date,
            "due_date": data.due_date,
            "status": _invoice_status(data.status, paid, totals.total_amount),
            "paid_amount": paid,
            "balance_due": totals.total_amount,
            "affects_inventory": affects_inventory,
        }
        outcome = await self._create(
            store, INVOICE, company_id, actor, data, data.customer_id, fields, totals=totals,
        )

        if affects_inventory:
            invoice = outcome.primary
            movements = document_movements(
                company_id,
                MovementType.OUT,
                ReferenceType.INVOICE,
                invoice["id"],
                invoice["items"],
                notes=f"Invoice {invoice['invoice_number']}",
            )
            stock = await stock_ledger_service.apply_movements(store, movements)
            outcome.extend(stock.warnings)
        return outcome

    async def create_lpo(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: LPOCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Create a purchase order after the LPO checks and the supplier
        conflict check. Conflict warnings are returned on the Outcome.

        Raises:
            ValidationError: LPO checks failed or the supplier conflict is blocking
        """
        checked = validation_service.validate_lpo_data(data)
        if not checked.is_valid:
            raise ValidationError("; ".join(checked.errors), extra={"errors": checked.errors})

        conflict = await validation_service.validate_supplier_selection(
            store,
            data.supplier_id,
            company_id,
            supplier_name=data.supplier_name,
            is_newly_created=data.supplier_newly_created,
        )
        if not conflict.is_valid:
            raise ValidationError(
                "; ".join(conflict.errors),
                extra={"errors": conflict.errors, "conflict_data": conflict.conflict_data},
            )

        fields = {
            "lpo_date": data.lpo_date,
            "delivery_date": data.delivery_date,
            "delivery_address": data.delivery_address,
            "contact_person": data.contact_person,
            "status": data.status.value,
        }
        outcome = await self._create(store, LPO, company_id, actor, data, data.supplier_id, fields)
        return outcome.extend(conflict.warnings)

    async def _create(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        actor: Actor,
        data: DocumentBase,
        counterparty_id: Optional[uuid.UUID],
        fields: Row,
        totals: Optional[DocumentTotals] = None,
    ) -> Outcome[dict[str, Any]]:
        await self.require_counterparty(store, kind, company_id, counterparty_id)
        await self.validate_products(store, company_id, [item.product_id for item in data.items])
        totals = totals or _resolve_totals(data)

        warnings: list[OperationWarning] = []
        number = data.number
        if not number:
            numbered = await numbering_service.generate_number(store, company_id, kind.type)
            number = numbered.primary
            warnings.extend(numbered.warnings)

        row = {
            "company_id": company_id,
            kind.counterparty_field: counterparty_id,
            kind.number_field: number,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_total,
            "total_amount": totals.total_amount,
            "notes": data.notes,
            "terms_and_conditions": data.terms_and_conditions,
            **fields,
        }
        header = await self.insert_header(store, kind, row, actor, warnings)
        items = await self.insert_items(
            store,
            kind,
            build_item_rows(data.items, kind.parent_key, header["id"]),
            number,
            warnings,
        )
        return Outcome(primary={**header, "items": items}).extend(warnings)

    # -------------------------------------------------------------------
    # Update with items
    # -------------------------------------------------------------------

    async def update_quotation(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        quotation_id: uuid.UUID,
        data: QuotationCreate,
    ) -> Outcome[dict[str, Any]]:
        fields = {
            "quotation_date": data.quotation_date,
            "valid_until": data.valid_until,
            "status": data.status.value,
        }
        return await self._update(store, QUOTATION, company_id, quotation_id, data, data.customer_id, fields)

    async def update_proforma(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        proforma_id: uuid.UUID,
        data: ProformaCreate,
    ) -> Outcome[dict[str, Any]]:
        fields = {
            "proforma_date": data.proforma_date,
            "valid_until": data.valid_until,
            "status": data.status.value,
        }
        return await self._update(store, PROFORMA, company_id, proforma_id, data, data.customer_id, fields)

    async def update_lpo(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        lpo_id: uuid.UUID,
        data: LPOCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Replace an LPO's header and items.

        Raises:
            ValidationError: LPO checks failed, or the LPO is received or cancelled
        """
        existing = await self.fetch_document(store, LPO, company_id, lpo_id)
        checked = validation_service.validate_lpo_update(data, existing.get("status"))
        if not checked.is_valid:
            raise ValidationError("; ".join(checked.errors), extra={"errors": checked.errors})

        fields = {
            "lpo_date": data.lpo_date,
            "delivery_date": data.delivery_date,
            "delivery_address": data.delivery_address,
            "contact_person": data.contact_person,
            "status": data.status.value,
        }
        return await self._update(
            store, LPO, company_id, lpo_id, data, data.supplier_id, fields, existing=existing,
        )

    async def update_invoice(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        invoice_id: uuid.UUID,
        data: InvoiceCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Replace an invoice's header and items.

        Stock already moved for the invoice is compensated first, then the
        new lines move stock again. The paid amount is kept and balance and
        status are derived from the new total.

        Raises:
            NotFoundError: no such invoice
            ValidationError: unknown customer or product, inconsistent totals
            ConflictError: a write was rejected by the store
        """
        existing = await self.fetch_document(store, INVOICE, company_id, invoice_id)
        customer_id = data.customer_id or existing.get("customer_id")
        await self.require_counterparty(store, INVOICE, company_id, customer_id)
        await self.validate_products(store, company_id, [item.product_id for item in data.items])
        totals = _resolve_totals(data)
        number = data.number or existing["invoice_number"]

        warnings: list[OperationWarning] = []
        reversal = await stock_ledger_service.reverse_reference(
            store, company_id, ReferenceType.INVOICE, invoice_id, number,
        )
        warnings.extend(reversal.warnings)

        paid = to_money(existing.get("paid_amount"))
        balance = totals.total_amount - paid
        if data.affects_inventory is not None:
            affects_inventory = data.affects_inventory
        else:
            affects_inventory = existing.get("affects_inventory") is not False

        patch = {
            "customer_id": customer_id,
            "invoice_number": number,
            "invoice_date": data.invoice_date,
            "due_date": data.due_date,
            "status": _invoice_status(data.status, paid, balance),
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_total,
            "total_amount": totals.total_amount,
            "balance_due": balance,
            "affects_inventory": affects_inventory,
            "notes": data.notes,
            "terms_and_conditions": data.terms_and_conditions,
        }
        header = await self._patch_header(store, INVOICE, company_id, invoice_id, patch, number)
        items = await self.replace_items(
            store,
            INVOICE,
            invoice_id,
            build_item_rows(data.items, INVOICE.parent_key, invoice_id),
            number,
            warnings,
        )

        if affects_inventory:
            movements = document_movements(
                company_id,
                MovementType.OUT,
                ReferenceType.INVOICE,
                invoice_id,
                items,
                notes=f"Invoice {number}",
            )
            stock = await stock_ledger_service.apply_movements(store, movements)
            warnings.extend(stock.warnings)

        logger.info("Updated invoice %s: total=%s balance=%s", number, totals.total_amount, balance)
        return Outcome(primary={**header, "items": items}).extend(warnings)

    async def _update(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        document_id: uuid.UUID,
        data: DocumentBase,
        counterparty_id: Optional[uuid.UUID],
        fields: Row,
        existing: Optional[Row] = None,
    ) -> Outcome[dict[str, Any]]:
        if existing is None:
            existing = await self.fetch_document(store, kind, company_id, document_id)
        counterparty_id = counterparty_id or existing.get(kind.counterparty_field)
        await self.require_counterparty(store, kind, company_id, counterparty_id)
        await self.validate_products(store, company_id, [item.product_id for item in data.items])
        totals = _resolve_totals(data)
        number = data.number or existing[kind.number_field]

        patch = {
            kind.counterparty_field: counterparty_id,
            kind.number_field: number,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_total,
            "total_amount": totals.total_amount,
            "notes": data.notes,
            "terms_and_conditions": data.terms_and_conditions,
            **fields,
        }
        warnings: list[OperationWarning] = []
        header = await self._patch_header(store, kind, company_id, document_id, patch, number)
        items = await self.replace_items(
            store,
            kind,
            document_id,
            build_item_rows(data.items, kind.parent_key, document_id),
            number,
            warnings,
        )
        logger.info("Updated %s %s", kind.label, number)
        return Outcome(primary={**header, "items": items}).extend(warnings)

    async def _patch_header(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        document_id: uuid.UUID,
        patch: Row,
        number: str,
    ) -> Row:
        try:
            updated = await store.update(kind.table, patch, {"id": document_id, "company_id": company_id})
        except StoreError as e:
            logger.error("Update of %s %s rejected: %s", kind.label, number, e.describe())
            raise_classified(e, f"Failed to update {kind.label} {number}")
        return updated[0] if updated else {**patch, "id": document_id}

    # -------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------

    async def convert_quotation_to_invoice(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        quotation_id: uuid.UUID,
        options: Optional[ConversionRequest] = None,
    ) -> Outcome[dict[str, Any]]:
        return await self._convert(store, company_id, actor, QUOTATION, quotation_id, INVOICE, options)

    async def convert_quotation_to_proforma(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        quotation_id: uuid.UUID,
        options: Optional[ConversionRequest] = None,
    ) -> Outcome[dict[str, Any]]:
        return await self._convert(store, company_id, actor, QUOTATION, quotation_id, PROFORMA, options)

    async def convert_proforma_to_invoice(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        proforma_id: uuid.UUID,
        options: Optional[ConversionRequest] = None,
    ) -> Outcome[dict[str, Any]]:
        return await self._convert(store, company_id, actor, PROFORMA, proforma_id, INVOICE, options)

    async def _convert(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        source: DocumentKind,
        source_id: uuid.UUID,
        target: DocumentKind,
        options: Optional[ConversionRequest],
    ) -> Outcome[dict[str, Any]]:
        """
        Copy a document into a new one of another type.

        Figures are copied verbatim, not recomputed. Converting to an invoice
        moves stock out. The source ends in status "converted" and cannot be
        converted again.

        Raises:
            NotFoundError: no such source document
            ConflictError: the source is already converted, or a write was rejected
        """
        options = options or ConversionRequest()
        source_header = await self.fetch_document(store, source, company_id, source_id)
        source_number = source_header.get(source.number_field)
        if source_header.get("status") == CONVERTED:
            raise ConflictError(
                f"{source.label.capitalize()} {source_number} has already been converted",
                extra={"source_id": str(source_id)},
            )

        source_items = await self.fetch_items(store, source, source_id)
        warnings: list[OperationWarning] = []
        numbered = await numbering_service.generate_number(store, company_id, target.type)
        number = numbered.primary
        warnings.extend(numbered.warnings)

        total = to_money(source_header.get("total_amount"))
        row = {
            "company_id": company_id,
            target.counterparty_field: source_header.get(source.counterparty_field),
            target.number_field: number,
            target.date_field: options.document_date or datetime.date.today(),
            "subtotal": to_money(source_header.get("subtotal")),
            "tax_amount": to_money(source_header.get("tax_amount")),
            "total_amount": total,
            "notes": source_header.get("notes"),
            "terms_and_conditions": source_header.get("terms_and_conditions"),
            "status": "draft",
        }
        if target is INVOICE:
            row.update({
                "due_date": options.due_date,
                "paid_amount": to_money(ZERO),
                "balance_due": total,
                "affects_inventory": True,
            })
        else:
            row["valid_until"] = options.valid_until or source_header.get("valid_until")

        header = await self.insert_header(store, target, row, actor, warnings)
        items = await self.insert_items(
            store,
            target,
            copy_item_rows(source_items, source.parent_key, target.parent_key, header["id"]),
            number,
            warnings,
        )

        if target is INVOICE:
            movements = document_movements(
                company_id,
                MovementType.OUT,
                ReferenceType.INVOICE,
                header["id"],
                items,
                notes=f"Invoice {number} from {source.label} {source_number}",
            )
            stock = await stock_ledger_service.apply_movements(store, movements)
            warnings.extend(stock.warnings)

        try:
            await store.update(source.table, {"status": CONVERTED}, {"id": source_id, "company_id": company_id})
        except StoreError as e:
            logger.error("Could not mark %s %s converted: %s", source.label, source_number, e.describe())
            warnings.append(make_warning(
                "SOURCE_STATUS_NOT_UPDATED",
                f"{source.label.capitalize()} {source_number} was converted to {number} "
                "but is not marked as converted",
                WarningSeverity.MODERATE,
                source_id=str(source_id),
                target_id=str(header["id"]),
            ))

        logger.info("Converted %s %s to %s %s", source.label, source_number, target.label, number)
        primary = {
            **header,
            "items": items,
            "source_id": source_id,
            "source_number": source_number,
        }
        return Outcome(primary=primary).extend(warnings)

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------

    async def update_document_status(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        document_type: DocumentType | str,
        document_id: uuid.UUID,
        data: StatusUpdate,
    ) -> Outcome[Row]:
        """
        Change the status of a quotation or proforma. A note, when given, is
        appended to the document notes with a timestamp.

        Raises:
            ValidationError: unsupported type or status, or "converted" requested
            ConflictError: the document is already converted
        """
        kind = get_kind(document_type)
        statuses = _STATUS_ENUMS.get(kind.type)
        if statuses is None:
            raise ValidationError(f"Status changes are not supported for {kind.label}s")
        if data.status not in {status.value for status in statuses}:
            raise ValidationError(f"Invalid {kind.label} status '{data.status}'")
        if data.status == CONVERTED:
            raise ValidationError(f"Use the conversion operations to convert a {kind.label}")

        header = await self.fetch_document(store, kind, company_id, document_id)
        number = header.get(kind.number_field)
        if header.get("status") == CONVERTED:
            raise ConflictError(f"{kind.label.capitalize()} {number} is converted and can no longer change status")

        patch: Row = {"status": data.status}
        if data.note:
            stamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            entry = f"[{stamp}] Status changed to {data.status}: {data.note}"
            patch["notes"] = f"{header['notes']}\n{entry}" if header.get("notes") else entry

        updated = await self._patch_header(store, kind, company_id, document_id, patch, number)
        logger.info("%s %s status %s -> %s", kind.label, number, header.get("status"), data.status)
        return Outcome(primary=updated)

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    async def delete_quotation(
        self, store: LedgerStore, company_id: uuid.UUID, actor: Actor, quotation_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        return await self.delete_with_audit(store, QUOTATION, company_id, actor, quotation_id)

    async def delete_proforma(
        self, store: LedgerStore, company_id: uuid.UUID, actor: Actor, proforma_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        return await self.delete_with_audit(store, PROFORMA, company_id, actor, proforma_id)

    async def delete_lpo(
        self, store: LedgerStore, company_id: uuid.UUID, actor: Actor, lpo_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        return await self.delete_with_audit(store, LPO, company_id, actor, lpo_id)

    async def delete_invoice(
        self, store: LedgerStore, company_id: uuid.UUID, actor: Actor, invoice_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        """
        Delete an invoice.

        Stock movements of the invoice are kept; payments allocated to it
        make the store refuse the delete (ConflictError).
        """
        return await self.delete_with_audit(store, INVOICE, company_id, actor, invoice_id)


# Global service instance
document_service = DocumentService()
