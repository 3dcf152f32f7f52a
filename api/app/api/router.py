from fastapi import APIRouter

from app.api.routes import campaigns, catalogs, dashboard, health, me, proposals, validations

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(me.router, prefix="/me", tags=["identity"])
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
api_router.include_router(proposals.router, prefix="/proposals", tags=["proposals"])
api_router.include_router(validations.router, prefix="/validations", tags=["validations"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(catalogs.router, prefix="/catalogs", tags=["catalogs"])
