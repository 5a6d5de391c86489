"""
FastAPI router for numbering and validation helpers
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Path, Query

from supply_ledger.core.deps import CompanyId, Store
from supply_ledger.schemas.common import Outcome, ValidationResult
from supply_ledger.schemas.document import DocumentType
from supply_ledger.services.numbering_service import numbering_service
from supply_ledger.services.validation_service import validation_service

# Logger for this module
logger = logging.getLogger(__name__)

numbering_router = APIRouter(
    prefix="/numbering",
    tags=["Numbering"],
)

router = APIRouter(
    prefix="/validation",
    tags=["Validation"],
)


@numbering_router.post(
    "/{document_type}",
    name="numbering_generate",
    summary="Generate document number",
    description="Issues the next number for a document type, or a timestamp based one with a warning.",
    response_model=Outcome[str],
)
async def generate_number(
    store: Store,
    company_id: CompanyId,
    document_type: DocumentType = Path(..., description="Document type"),
) -> Outcome[str]:
    return await numbering_service.generate_number(store, company_id, document_type)


@router.get(
    "/supplier-conflict/{entity_id}",
    name="validation_supplier_conflict",
    summary="Check supplier selection",
    description="Reports whether a counterparty chosen as supplier also has customer history.",
    response_model=ValidationResult,
)
async def check_supplier_conflict(
    store: Store,
    company_id: CompanyId,
    entity_id: uuid.UUID = Path(..., description="Counterparty UUID"),
    supplier_name: Optional[str] = Query(None, description="Name used in messages"),
    newly_created: bool = Query(False, description="Counterparty created in this session"),
) -> ValidationResult:
    return await validation_service.validate_supplier_selection(
        store,
        entity_id,
        company_id,
        supplier_name=supplier_name,
        is_newly_created=newly_created,
    )


@router.get(
    "/conflict-summary/{entity_id}",
    name="validation_conflict_summary",
    summary="Customer / supplier history of a counterparty",
    response_model=dict[str, Any],
)
async def conflict_summary(
    store: Store,
    company_id: CompanyId,
    entity_id: uuid.UUID = Path(..., description="Counterparty UUID"),
) -> dict[str, Any]:
    return await validation_service.get_entity_conflict_summary(store, entity_id, company_id)
