import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from trailverse.api.deps import get_provider_registry
from trailverse.core.providers import ProviderRegistry
from trailverse.core.utils import utc_now
from trailverse.db.session import test_connection

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
def health_check():
    return {"status": "healthy", "timestamp": utc_now().isoformat()}

@router.get("/health/detailed")
def detailed_health_check(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Database reachability and configured providers"""
    try:
        database = "connected" if test_connection() else "disconnected"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        database = "disconnected"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database,
        "providers": registry.available_providers(),
        "timestamp": utc_now().isoformat(),
    }
