"""
FastAPI router for proforma invoices
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Body, Path, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import ConversionRequest, DocumentType, ProformaCreate, StatusUpdate
from supply_ledger.services.document_service import document_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/proformas",
    tags=["Proforma invoices"],
)


@router.post(
    "/",
    name="proformas_create",
    summary="Create proforma invoice",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_proforma(
    data: ProformaCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    return await document_service.create_proforma(store, company_id, actor, data)


@router.put(
    "/{proforma_id}",
    name="proformas_update",
    summary="Update proforma invoice",
    description="Replaces the proforma header and all its items.",
    response_model=Outcome[dict[str, Any]],
)
async def update_proforma(
    data: ProformaCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    proforma_id: uuid.UUID = Path(..., description="Proforma UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_proforma(store, company_id, actor, proforma_id, data)


@router.patch(
    "/{proforma_id}/status",
    name="proformas_status",
    summary="Change proforma status",
    response_model=Outcome[dict[str, Any]],
)
async def update_proforma_status(
    data: StatusUpdate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    proforma_id: uuid.UUID = Path(..., description="Proforma UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_document_status(
        store, company_id, DocumentType.PROFORMA, proforma_id, data,
    )


@router.post(
    "/{proforma_id}/convert-to-invoice",
    name="proformas_convert_invoice",
    summary="Convert proforma to invoice",
    description="Copies the proforma into a new invoice, moves stock and marks the proforma converted.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def convert_proforma_to_invoice(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    proforma_id: uuid.UUID = Path(..., description="Proforma UUID"),
    options: Optional[ConversionRequest] = Body(None),
) -> Outcome[dict[str, Any]]:
    return await document_service.convert_proforma_to_invoice(
        store, company_id, actor, proforma_id, options,
    )


@router.delete(
    "/{proforma_id}",
    name="proformas_delete",
    summary="Delete proforma invoice",
    response_model=Outcome[dict[str, Any]],
)
async def delete_proforma(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    proforma_id: uuid.UUID = Path(..., description="Proforma UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.delete_proforma(store, company_id, actor, proforma_id)
