from fastapi import APIRouter

from lease_ledger.api.v1.endpoints import (
    # Bank integration
    bank,
    # Operations
    maintenance,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Bank Integration ====================
api_router.include_router(
    bank.router,
    prefix="/bank",
    tags=["Bank Callback"]
)

# ==================== Billing Maintenance ====================
api_router.include_router(
    maintenance.router,
    prefix="/maintenance",
    tags=["Maintenance"]
)
