"""
API v1 router.
"""
from fastapi import APIRouter
from app.api.v1.endpoints import activity, health, screenshots
from app.integrations.router import router as integrations_router

api_router = APIRouter()

# Routers carry their own prefixes
api_router.include_router(activity.router)
api_router.include_router(screenshots.router)
api_router.include_router(integrations_router)
api_router.include_router(health.router, tags=["health"])
