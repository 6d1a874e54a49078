from fastapi import APIRouter

from fuelgov.api.v1 import approvals, policies

api_router = APIRouter()

api_router.include_router(policies.router, prefix="/governance/policies", tags=["governance"])
api_router.include_router(approvals.router, prefix="/governance/approvals", tags=["governance"])
