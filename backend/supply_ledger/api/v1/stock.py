"""
FastAPI router for the stock ledger
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from supply_ledger.core.deps import CompanyId, Store, require_capability
from supply_ledger.core.permissions import ADJUST_STOCK
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.inventory import (
    ReferenceType,
    RestockRequest,
    StockMovementCreate,
    StockMovementRead,
    StockReconciliationReport,
)
from supply_ledger.services.stock_ledger_service import stock_ledger_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/stock",
    tags=["Stock"],
)


@router.post(
    "/movements",
    name="stock_movement_create",
    summary="Record stock movement",
    description="Appends a movement to the ledger and updates the product stock level.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(ADJUST_STOCK))],
)
async def create_movement(
    data: StockMovementCreate,
    store: Store,
    company_id: CompanyId,
) -> Outcome[dict[str, Any]]:
    return await stock_ledger_service.apply_movement(
        store,
        company_id,
        data.product_id,
        data.movement_type,
        data.reference_type,
        data.reference_id,
        data.signed_quantity(),
        cost_per_unit=data.cost_per_unit,
        notes=data.notes,
    )


@router.get(
    "/movements",
    name="stock_movement_list",
    summary="Stock movement history",
    description="Movements of the company, newest first, optionally filtered.",
    response_model=list[StockMovementRead],
)
async def list_movements(
    store: Store,
    company_id: CompanyId,
    product_id: Optional[uuid.UUID] = Query(None, description="Product UUID"),
    reference_type: Optional[ReferenceType] = Query(None, description="Originating event"),
    reference_id: Optional[uuid.UUID] = Query(None, description="Originating document UUID"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum rows"),
) -> list[StockMovementRead]:
    rows = await stock_ledger_service.get_movements(
        store,
        company_id,
        product_id=product_id,
        reference_type=reference_type,
        reference_id=reference_id,
        limit=limit,
    )
    return [StockMovementRead.model_validate(row) for row in rows]


@router.post(
    "/products/{product_id}/restock",
    name="stock_restock",
    summary="Restock product",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(ADJUST_STOCK))],
)
async def restock_product(
    data: RestockRequest,
    store: Store,
    company_id: CompanyId,
    product_id: uuid.UUID = Path(..., description="Product UUID"),
) -> Outcome[dict[str, Any]]:
    return await stock_ledger_service.restock_product(
        store,
        company_id,
        product_id,
        data.quantity,
        cost_per_unit=data.cost_per_unit,
        notes=data.notes,
    )


@router.post(
    "/reconcile",
    name="stock_reconcile",
    summary="Reconcile stock levels",
    description="Compares every product stock level with the sum of its movements.",
    response_model=StockReconciliationReport,
    dependencies=[Depends(require_capability(ADJUST_STOCK))],
)
async def reconcile_stock(
    store: Store,
    company_id: CompanyId,
    auto_fix: bool = Query(False, description="Overwrite mismatched stock levels"),
) -> StockReconciliationReport:
    return await stock_ledger_service.reconcile_stock_levels(store, company_id, auto_fix=auto_fix)
