"""
FastAPI router for payments
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging

from fastapi import APIRouter, Depends, Path, Query, status

from supply_ledger.core.deps import CompanyId, Store, require_capability
from supply_ledger.core.permissions import DELETE_PAYMENT, RECONCILE_BALANCES
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.payment import (
    PaymentCreate,
    PaymentDeletion,
    PaymentResult,
    ReconciliationReport,
)
from supply_ledger.services.payment_service import payment_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/payments",
    tags=["Payments"],
)


@router.post(
    "/",
    name="payments_create",
    summary="Record payment",
    description=(
        "Records a payment against an invoice. The result says whether the atomic "
        "path or the fallback was used and what degraded."
    ),
    response_model=Outcome[PaymentResult],
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    data: PaymentCreate,
    store: Store,
    company_id: CompanyId,
) -> Outcome[PaymentResult]:
    """Record a payment for the caller's company; the company id in the body is ignored."""
    data = data.model_copy(update={"company_id": str(company_id)})
    return await payment_service.record_payment(store, data)


@router.post(
    "/reconcile",
    name="payments_reconcile",
    summary="Reconcile invoice balances",
    description="Recomputes every invoice of the company from its payment allocations.",
    response_model=ReconciliationReport,
    dependencies=[Depends(require_capability(RECONCILE_BALANCES))],
)
async def reconcile_balances(
    store: Store,
    company_id: CompanyId,
    auto_fix: bool = Query(False, description="Write the recomputed figures"),
) -> ReconciliationReport:
    return await payment_service.reconcile_all_balances(store, company_id, auto_fix=auto_fix)


@router.delete(
    "/{payment_id}",
    name="payments_delete",
    summary="Delete payment",
    description="Reverses every allocation of the payment on its invoices, then deletes it.",
    response_model=Outcome[PaymentDeletion],
    dependencies=[Depends(require_capability(DELETE_PAYMENT))],
)
async def delete_payment(
    store: Store,
    company_id: CompanyId,
    payment_id: str = Path(..., description="Payment UUID"),
) -> Outcome[PaymentDeletion]:
    return await payment_service.delete_payment(store, company_id, payment_id)
