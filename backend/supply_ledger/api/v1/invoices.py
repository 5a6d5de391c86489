"""
FastAPI router for invoices
Project: Supply Ledger (healthcare supplies ERP)

Creating or editing an invoice moves stock unless affects_inventory is
false. Payments are recorded through the payments router.
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Path, Query, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store, require_capability
from supply_ledger.core.permissions import RECONCILE_BALANCES
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import InvoiceCreate
from supply_ledger.schemas.payment import ReconciliationReport
from supply_ledger.services.document_service import document_service
from supply_ledger.services.payment_service import payment_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/invoices",
    tags=["Invoices"],
)


@router.post(
    "/",
    name="invoices_create",
    summary="Create invoice",
    description="Creates an invoice with its items and moves the invoiced products out of stock.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    """
    Create an invoice.

    Warnings in the response report stock levels that could not be updated;
    the invoice itself is saved.
    """
    return await document_service.create_invoice(store, company_id, actor, data)


@router.put(
    "/{invoice_id}",
    name="invoices_update",
    summary="Update invoice",
    description=(
        "Replaces the invoice header and items. Previous stock movements are "
        "compensated before the new ones are written."
    ),
    response_model=Outcome[dict[str, Any]],
)
async def update_invoice(
    data: InvoiceCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    invoice_id: uuid.UUID = Path(..., description="Invoice UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_invoice(store, company_id, actor, invoice_id, data)


@router.delete(
    "/{invoice_id}",
    name="invoices_delete",
    summary="Delete invoice",
    description="Deletes an invoice without payments. Requires the delete_invoice capability.",
    response_model=Outcome[dict[str, Any]],
)
async def delete_invoice(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    invoice_id: uuid.UUID = Path(..., description="Invoice UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.delete_invoice(store, company_id, actor, invoice_id)


@router.post(
    "/{invoice_id}/reconcile",
    name="invoices_reconcile",
    summary="Reconcile invoice balance",
    description="Recomputes paid amount, balance and status of one invoice from its allocations.",
    response_model=ReconciliationReport,
    dependencies=[Depends(require_capability(RECONCILE_BALANCES))],
)
async def reconcile_invoice(
    store: Store,
    company_id: CompanyId,
    invoice_id: uuid.UUID = Path(..., description="Invoice UUID"),
    auto_fix: bool = Query(False, description="Write the recomputed figures"),
) -> ReconciliationReport:
    return await payment_service.reconcile_invoice_balance(store, company_id, invoice_id, auto_fix=auto_fix)
