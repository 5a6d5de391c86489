"""
FastAPI router for quotations
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Body, Path, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import ConversionRequest, DocumentType, QuotationCreate, StatusUpdate
from supply_ledger.services.document_service import document_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/quotations",
    tags=["Quotations"],
)


@router.post(
    "/",
    name="quotations_create",
    summary="Create quotation",
    description="Creates a quotation with its items. The number is generated when omitted.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_quotation(
    data: QuotationCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    return await document_service.create_quotation(store, company_id, actor, data)


@router.put(
    "/{quotation_id}",
    name="quotations_update",
    summary="Update quotation",
    description="Replaces the quotation header and all its items.",
    response_model=Outcome[dict[str, Any]],
)
async def update_quotation(
    data: QuotationCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    quotation_id: uuid.UUID = Path(..., description="Quotation UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_quotation(store, company_id, actor, quotation_id, data)


@router.patch(
    "/{quotation_id}/status",
    name="quotations_status",
    summary="Change quotation status",
    description="Sets a new status; an optional note is appended to the quotation notes.",
    response_model=Outcome[dict[str, Any]],
)
async def update_quotation_status(
    data: StatusUpdate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    quotation_id: uuid.UUID = Path(..., description="Quotation UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.update_document_status(
        store, company_id, DocumentType.QUOTATION, quotation_id, data,
    )


@router.post(
    "/{quotation_id}/convert-to-invoice",
    name="quotations_convert_invoice",
    summary="Convert quotation to invoice",
    description="Copies the quotation into a new invoice, moves stock and marks the quotation converted.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def convert_quotation_to_invoice(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    quotation_id: uuid.UUID = Path(..., description="Quotation UUID"),
    options: Optional[ConversionRequest] = Body(None),
) -> Outcome[dict[str, Any]]:
    return await document_service.convert_quotation_to_invoice(
        store, company_id, actor, quotation_id, options,
    )


@router.post(
    "/{quotation_id}/convert-to-proforma",
    name="quotations_convert_proforma",
    summary="Convert quotation to proforma invoice",
    description="Copies the quotation into a new proforma invoice and marks the quotation converted.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def convert_quotation_to_proforma(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    quotation_id: uuid.UUID = Path(..., description="Quotation UUID"),
    options: Optional[ConversionRequest] = Body(None),
) -> Outcome[dict[str, Any]]:
    return await document_service.convert_quotation_to_proforma(
        store, company_id, actor, quotation_id, options,
    )


@router.delete(
    "/{quotation_id}",
    name="quotations_delete",
    summary="Delete quotation",
    description="Deletes a quotation and its items after an audit snapshot.",
    response_model=Outcome[dict[str, Any]],
)
async def delete_quotation(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    quotation_id: uuid.UUID = Path(..., description="Quotation UUID"),
) -> Outcome[dict[str, Any]]:
    return await document_service.delete_quotation(store, company_id, actor, quotation_id)
