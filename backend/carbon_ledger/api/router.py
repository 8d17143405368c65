from fastapi import APIRouter

from carbon_ledger.api.routes import (
    admin_sweeps,
    claims,
    interventions,
    notifications,
    partnerships,
    transfers,
)

api_router = APIRouter()
api_router.include_router(interventions.router)
api_router.include_router(claims.router)
api_router.include_router(transfers.router)
api_router.include_router(partnerships.router)
api_router.include_router(notifications.router)
api_router.include_router(admin_sweeps.router)
