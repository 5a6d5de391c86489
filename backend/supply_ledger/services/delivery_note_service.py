"""
Service Layer for delivery notes
Project: Supply Ledger (healthcare supplies ERP)

A delivery note is always backed by an invoice of the same customer and can
only ship products, in quantities, that the invoice bills.
"""

import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any

from supply_ledger.core.exceptions import ValidationError
from supply_ledger.core.permissions import Actor
from supply_ledger.schemas.common import OperationWarning, Outcome
from supply_ledger.schemas.document import DeliveryNoteCreate
from supply_ledger.schemas.inventory import MovementType, ReferenceType
from supply_ledger.services.balance_rules import ZERO, to_money
from supply_ledger.services.document_kinds import DELIVERY_NOTE, INVOICE
from supply_ledger.services.document_writer import DocumentWriter
from supply_ledger.services.numbering_service import numbering_service
from supply_ledger.services.stock_ledger_service import document_movements, stock_ledger_service
from supply_ledger.services.validation_service import validation_service
from supply_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


class DeliveryNoteService(DocumentWriter):
    """Creates delivery notes against invoices."""

    async def create_delivery_note(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        data: DeliveryNoteCreate,
    ) -> Outcome[dict[str, Any]]:
        """
        Create a delivery note and move the delivered goods out of stock.

        Delivering more than the caller says was ordered is only a warning;
        delivering more than the invoice bills is an error.

        Raises:
            ValidationError: missing fields, unknown or foreign invoice,
                customer mismatch, product not invoiced, over-delivery
        """
        checked = validation_service.validate_delivery_note_data(company_id, data)
        if not checked.is_valid:
            raise ValidationError("; ".join(checked.errors), extra={"errors": checked.errors})
        warnings: list[OperationWarning] = list(checked.warnings)

        invoices = await store.select(
            INVOICE.table,
            filters={"id": data.invoice_id, "company_id": company_id},
            limit=1,
        )
        if not invoices:
            raise ValidationError(f"Invoice {data.invoice_id} not found in this company")
        invoice = invoices[0]
        invoice_number = invoice.get("invoice_number")

        if invoice.get("customer_id") != data.customer_id:
            raise ValidationError(
                f"Delivery note customer mismatch: invoice {invoice_number} "
                f"belongs to customer {invoice.get('customer_id')}, not {data.customer_id}",
                extra={"invoice_id": str(data.invoice_id)},
            )

        invoiced: dict[Any, Decimal] = defaultdict(lambda: ZERO)
        for line in await self.fetch_items(store, INVOICE, data.invoice_id):
            if line.get("product_id") is not None:
                invoiced[line["product_id"]] += Decimal(str(line["quantity"]))

        delivered: dict[Any, Decimal] = defaultdict(lambda: ZERO)
        for index, item in enumerate(data.items, start=1):
            if item.product_id not in invoiced:
                raise ValidationError(
                    f"Item {index}: product {item.product_id} is not on invoice {invoice_number}"
                )
            delivered[item.product_id] += item.quantity_delivered
            if delivered[item.product_id] > invoiced[item.product_id]:
                raise ValidationError(
                    f"Item {index}: delivered quantity ({delivered[item.product_id]}) exceeds "
                    f"invoiced quantity ({invoiced[item.product_id]})"
                )

        number = data.number
        if not number:
            numbered = await numbering_service.generate_number(store, company_id, DELIVERY_NOTE.type)
            number = numbered.primary
            warnings.extend(numbered.warnings)

        row = {
            "company_id": company_id,
            "customer_id": data.customer_id,
            "invoice_id": data.invoice_id,
            "delivery_number": number,
            "delivery_date": data.delivery_date,
            "delivery_address": data.delivery_address,
            "delivery_method": data.delivery_method,
            "received_by": data.received_by,
            "notes": data.notes,
            "status": data.status.value,
        }
        header = await self.insert_header(store, DELIVERY_NOTE, row, actor, warnings)

        item_rows = []
        for index, item in enumerate(data.items, start=1):
            unit_price = to_money(item.unit_price)
            item_rows.append({
                "delivery_note_id": header["id"],
                "product_id": item.product_id,
                "description": item.description,
                "quantity": item.quantity_delivered,
                "quantity_ordered": item.quantity_ordered,
                "quantity_delivered": item.quantity_delivered,
                "unit_price": unit_price,
                "line_total": to_money(unit_price * item.quantity_delivered),
                "sort_order": index,
            })
        items = await self.insert_items(store, DELIVERY_NOTE, item_rows, number, warnings)

        movements = document_movements(
            company_id,
            MovementType.OUT,
            ReferenceType.DELIVERY_NOTE,
            header["id"],
            items,
            notes=f"Delivery note {number} for invoice {invoice_number}",
            quantity_field="quantity_delivered",
        )
        stock = await stock_ledger_service.apply_movements(store, movements, concurrent=False)
        warnings.extend(stock.warnings)

        logger.info("Created delivery note %s for invoice %s", number, invoice_number)
        return Outcome(primary={**header, "items": items}).extend(warnings)


# Global service instance
delivery_note_service = DeliveryNoteService()
