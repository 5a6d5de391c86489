"""
FastAPI router for credit notes
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Path, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import CreditNoteCreate
from supply_ledger.services.credit_note_service import credit_note_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/credit-notes",
    tags=["Credit notes"],
)


@router.post(
    "/",
    name="credit_notes_create",
    summary="Create credit note",
    description="Creates a credit note; with affects_inventory the credited goods return to stock.",
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_credit_note(
    data: CreditNoteCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    return await credit_note_service.create_credit_note(store, company_id, actor, data)


@router.delete(
    "/{credit_note_id}",
    name="credit_notes_delete",
    summary="Delete credit note",
    response_model=Outcome[dict[str, Any]],
)
async def delete_credit_note(
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
    credit_note_id: uuid.UUID = Path(..., description="Credit note UUID"),
) -> Outcome[dict[str, Any]]:
    return await credit_note_service.delete_credit_note(store, company_id, actor, credit_note_id)
