"""
FastAPI router for delivery notes
Project: Supply Ledger (healthcare supplies ERP)
"""

import logging
from typing import Any

from fastapi import APIRouter, status

from supply_ledger.core.deps import CompanyId, CurrentActor, Store
from supply_ledger.schemas.common import Outcome
from supply_ledger.schemas.document import DeliveryNoteCreate
from supply_ledger.services.delivery_note_service import delivery_note_service

# Logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/delivery-notes",
    tags=["Delivery notes"],
)


@router.post(
    "/",
    name="delivery_notes_create",
    summary="Create delivery note",
    description=(
        "Creates a delivery note against an invoice of the same customer. "
        "Delivered quantities cannot exceed the invoiced ones."
    ),
    response_model=Outcome[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
)
async def create_delivery_note(
    data: DeliveryNoteCreate,
    store: Store,
    company_id: CompanyId,
    actor: CurrentActor,
) -> Outcome[dict[str, Any]]:
    return await delivery_note_service.create_delivery_note(store, company_id, actor, data)
