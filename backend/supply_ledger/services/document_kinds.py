"""
Per-type document descriptors
Project: Supply Ledger (healthcare supplies ERP)

Each document type stores the same concepts under different table and column
names (invoice_number vs quotation_number, invoice_items.invoice_id vs
quotation_items.quotation_id, ...). DocumentKind names them once so the
lifecycle code can stay generic.
"""

from dataclasses import dataclass
from typing import Optional

from supply_ledger.core import permissions
from supply_ledger.schemas.document import DocumentType


@dataclass(frozen=True)
class DocumentKind:
    """Table layout and rules of one document type."""

    type: DocumentType
    label: str
    table: str
    items_table: str
    parent_key: str
    number_field: str
    date_field: str
    counterparty_field: str
    prefix: str
    delete_permission: Optional[str] = None
    # (table, foreign key) pairs whose rows forbid deleting the document
    restricted_by: tuple[tuple[str, str], ...] = ()

    @property
    def number_procedure(self) -> str:
        """Name of the server-side numbering procedure."""
        return f"generate_{self.type.value}_number"


QUOTATION = DocumentKind(
    type=DocumentType.QUOTATION,
    label="quotation",
    table="quotations",
    items_table="quotation_items",
    parent_key="quotation_id",
    number_field="quotation_number",
    date_field="quotation_date",
    counterparty_field="customer_id",
    prefix="QT",
    delete_permission=permissions.DELETE_QUOTATION,
)

INVOICE = DocumentKind(
    type=DocumentType.INVOICE,
    label="invoice",
    table="invoices",
    items_table="invoice_items",
    parent_key="invoice_id",
    number_field="invoice_number",
    date_field="invoice_date",
    counterparty_field="customer_id",
    prefix="INV",
    delete_permission=permissions.DELETE_INVOICE,
    restricted_by=(("payment_allocations", "invoice_id"), ("delivery_notes", "invoice_id")),
)

PROFORMA = DocumentKind(
    type=DocumentType.PROFORMA,
    label="proforma invoice",
    table="proforma_invoices",
    items_table="proforma_items",
    parent_key="proforma_id",
    number_field="proforma_number",
    date_field="proforma_date",
    counterparty_field="customer_id",
    prefix="PF",
    delete_permission=permissions.DELETE_PROFORMA,
)

LPO = DocumentKind(
    type=DocumentType.LPO,
    label="LPO",
    table="lpos",
    items_table="lpo_items",
    parent_key="lpo_id",
    number_field="lpo_number",
    date_field="lpo_date",
    counterparty_field="supplier_id",
    prefix="LPO",
    delete_permission=permissions.DELETE_LPO,
)

DELIVERY_NOTE = DocumentKind(
    type=DocumentType.DELIVERY_NOTE,
    label="delivery note",
    table="delivery_notes",
    items_table="delivery_note_items",
    parent_key="delivery_note_id",
    number_field="delivery_number",
    date_field="delivery_date",
    counterparty_field="customer_id",
    prefix="DN",
)

CREDIT_NOTE = DocumentKind(
    type=DocumentType.CREDIT_NOTE,
    label="credit note",
    table="credit_notes",
    items_table="credit_note_items",
    parent_key="credit_note_id",
    number_field="credit_note_number",
    date_field="credit_note_date",
    counterparty_field="customer_id",
    prefix="CN",
    delete_permission=permissions.DELETE_CREDIT_NOTE,
)

DOCUMENT_KINDS: dict[DocumentType, DocumentKind] = {
    kind.type: kind
    for kind in (QUOTATION, INVOICE, PROFORMA, LPO, DELIVERY_NOTE, CREDIT_NOTE)
}


def get_kind(document_type: DocumentType | str) -> DocumentKind:
    """Return the descriptor for a DocumentType (or its string value)."""
    return DOCUMENT_KINDS[DocumentType(document_type)]
