from fastapi import APIRouter

from directory_api.api.routes import admin, audit, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(admin.router, prefix="/admin", tags=["moderation"])
api_router.include_router(audit.router, prefix="/admin", tags=["audit"])
