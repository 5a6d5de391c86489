"""
FastAPI router for local purchase orders (LPOs)
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Path, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import LPOCreate
from supply_ledger.services.document_service import document_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/lpos",
    tags=["LPOs"],
)


@router.post(
    "/",
    name="lpos_create",
    summary="Create LPO",
    description=(
        "Creates a purchase order. Supplier conflicts with customer history are "
        "returned as warnings, or block the creation above the configured threshold."
    ),
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_lpo(
    data: LPOCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    return await document_service.create_lpo(store, company_id, actor, data)


@router.put(
    "/{lpo_id}",
    name="lpos_update",
    summary="Update LPO",
    description="Replaces the LPO header and items. Received and cancelled LPOs cannot be edited.",
    response_model=Outcome[dict[str, Any]],
)
async def update_lpo(
    data: LPOCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    lpo_id: uuid.UUID = Path(..., description="LPO UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_lpo(store, company_id, actor, lpo_id, data)


@router.delete(
    "/{lpo_id}",
    name="lpos_delete",
    summary="Delete LPO",
    response_model=Outcome[dict[str, Any]],
)
async def delete_lpo(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    lpo_id: uuid.UUID = Path(..., description="LPO UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.delete_lpo(store, company_id, actor, lpo_id)
