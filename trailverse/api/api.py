from fastapi import APIRouter
from trailverse.api.endpoints import ai
from trailverse.routers import health

api_router = APIRouter()

api_router.include_router(ai.router, prefix="/ai", tags=["ai"])
api_router.include_router(health.router, tags=["health"])
