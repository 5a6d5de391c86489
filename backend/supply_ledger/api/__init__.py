"""
API Routes
Project: Supply Ledger (healthcare supplies ERP)

Aggregates the versioned routers.
"""

from supply_ledger.api.v1 import api_v1_router

# Exported router
__all__ = ["api_v1_router"]
