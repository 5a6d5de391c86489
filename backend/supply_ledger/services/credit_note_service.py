"""
Service Layer for credit notes
Project: Supply Ledger (healthcare supplies ERP)

Credit notes credit a customer, optionally against one of its invoices.
With affects_inventory the credited goods come back into stock; deleting
such a credit note takes them out again with compensating movements.
"""

import logging
import uuid
from typing import Any

from supply_ledger.core.exceptions import ConflictError, StoreError, ValidationError
from supply_ledger.core.permissions import Actor, require
from supply_ledger.schemas.common import Outcome, WarningSeverity
from supply_ledger.schemas.document import CreditNoteCreate
from supply_ledger.schemas.inventory import MovementType, ReferenceType
from supply_ledger.services.document_kinds import CREDIT_NOTE, INVOICE
from supply_ledger.services.document_writer import DocumentWriter
from supply_ledger.services.line_items import build_item_rows, resolve_totals
from supply_ledger.services.numbering_service import numbering_service
from supply_ledger.services.stock_ledger_service import document_movements, stock_ledger_service
from supply_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


class CreditNoteService(DocumentWriter):
    """Credit note creation and deletion."""

    async def create_credit_note(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: CreditNoteCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Create a credit note.

        Raises:
            ValidationError: unknown customer, product or invoice, invoice of
                another customer, inconsistent totals
        """
        await self.require_counterparty(store, CREDIT_NOTE, company_id, data.customer_id)
        await self.validate_products(store, company_id, [item.product_id for item in data.items])

        if data.invoice_id is not None:
            invoices = await store.select(
                INVOICE.table,
                columns=["id", "customer_id", "invoice_number"],
                filters={"id": data.invoice_id, "company_id": company_id},
                limit=1,
            )
            if not invoices:
                raise ValidationError(f"Invoice {data.invoice_id} not found in this company")
            if invoices[0]["customer_id"] != data.customer_id:
                raise ValidationError(
                    f"Invoice {invoices[0]['invoice_number']} belongs to another customer"
                )

        try:
            totals = resolve_totals(data.items, data.subtotal, data.tax_amount, data.total_amount)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        warnings = []
        number = data.number
        if not number:
            numbered = await numbering_service.generate_number(store, company_id, CREDIT_NOTE.type)
            number = numbered.primary
            warnings.extend(numbered.warnings)

        row = {
            "company_id": company_id,
            "customer_id": data.customer_id,
            "invoice_id": data.invoice_id,
            "credit_note_number": number,
            "credit_note_date": data.credit_note_date,
            "reason": data.reason,
            "affects_inventory": data.affects_inventory,
            "status": data.status.value,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_total,
            "total_amount": totals.total_amount,
            "notes": data.notes,
            "terms_and_conditions": data.terms_and_conditions,
        }
        header = await self.insert_header(store, CREDIT_NOTE, row, actor, warnings)
        items = await self.insert_items(
            store,
            CREDIT_NOTE,
            build_item_rows(data.items, CREDIT_NOTE.parent_key, header["id"]),
            number,
            warnings,
        )

        if data.affects_inventory:
            movements = document_movements(
                company_id,
                MovementType.IN,
                ReferenceType.CREDIT_NOTE,
                header["id"],
                items,
                notes=f"Credit note {number}",
            )
            stock = await stock_ledger_service.apply_movements(store, movements)
            warnings.extend(stock.warnings)

        return Outcome(primary={**header, "items": items}).extend(warnings)

    async def delete_credit_note(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        credit_note_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        """
        Delete a credit note, then take its returned goods back out of stock.

        A refused delete leaves the stock untouched.

        Raises:
            AuthorizationError: the actor may not delete credit notes
            NotFoundError: no such credit note
            ConflictError: the store refused the delete
        """
        require(actor, CREDIT_NOTE.delete_permission)
        header = await self.fetch_document(store, CREDIT_NOTE, company_id, credit_note_id)

        outcome = await self.delete_with_audit(store, CREDIT_NOTE, company_id, actor, credit_note_id)

        if header.get("affects_inventory"):
            number = header["credit_note_number"]
            try:
                reversal = await stock_ledger_service.reverse_reference(
                    store, company_id, ReferenceType.CREDIT_NOTE, credit_note_id, number,
                )
            except (StoreError, ConflictError) as e:
                logger.error("Stock of deleted credit note %s was not reversed: %s", number, e)
                outcome.warn(
                    "STOCK_REVERSAL_FAILED",
                    f"Credit note {number} was deleted but its returned goods are still in stock; "
                    "run stock reconciliation after fixing the ledger",
                    WarningSeverity.MODERATE,
                    credit_note_id=str(credit_note_id),
                )
            else:
                outcome.extend(reversal.warnings)
        return outcome


# Global service instance
credit_note_service = CreditNoteService()
