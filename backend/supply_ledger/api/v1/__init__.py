"""
API v1 Routes
Project: Supply Ledger (healthcare supplies ERP)

Version 1 router of the API.
"""

from fastapi import APIRouter

from supply_ledger.api.v1 import (
    credit_notes, delivery_notes, invoices, lpos, payments, proformas, quotations, stock, validation
)

# Aggregated v1 router
api_v1_router = APIRouter(prefix="/api/v1")

# Module routers
api_v1_router.include_router(quotations.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(proformas.router)
api_v1_router.include_router(lpos.router)
api_v1_router.include_router(delivery_notes.router)
api_v1_router.include_router(credit_notes.router)
api_v1_router.include_router(payments.router)
api_v1_router.include_router(stock.router)
api_v1_router.include_router(validation.numbering_router)
api_v1_router.include_router(validation.router)

# Exports
__all__ = ["api_v1_router"]
