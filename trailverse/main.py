from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from trailverse.core.config import settings
from trailverse.api.api import api_router
from trailverse.db.init_db import init_db
from trailverse.core.error_handlers import setup_error_handlers
from trailverse.core.error_tracking import init_sentry
from trailverse.core.logging_config import init_logging
from trailverse.core.providers import build_provider_registry
from trailverse.core.scheduler import init_scheduler
import logging

logger = logging.getLogger(__name__)

description = """
## TrailVerse API

AI trip-planning chat for U.S. national parks.

### Features

* **Chat**: Claude (with model fallback) or OpenAI, grounded with live weather and NPS park facts
* **Anonymous trial**: a limited number of questions per visitor without an account
* **Token budget**: daily token allowance for signed-in users

### Authentication

Signed-in endpoints take a Bearer token:

```
Authorization: Bearer <your-token>
```
"""

tags_metadata = [
    {
        "name": "ai",
        "description": "Chat relay, anonymous sessions, providers and token usage."
    },
    {
        "name": "health",
        "description": "Liveness and dependency checks."
    }
]

docs_url = f"{settings.API_PREFIX}/docs" if settings.ENVIRONMENT == "development" else None
openapi_url = f"{settings.API_PREFIX}/openapi.json" if settings.ENVIRONMENT == "development" else None

app = FastAPI(
    title=settings.PROJECT_NAME,
    description=description,
    version=settings.VERSION,
    openapi_url=openapi_url,
    docs_url=docs_url,
    redoc_url=None,
    openapi_tags=tags_metadata,
    debug=settings.DEBUG
)

init_sentry()

setup_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Clients are created once; keys read after startup are ignored
app.state.provider_registry = build_provider_registry(settings)
app.state.scheduler = None

@app.on_event("startup")
async def startup_event():
    init_logging()

    init_db()

    if settings.ENABLE_SCHEDULED_TASKS:
        app.state.scheduler = init_scheduler()
        app.state.scheduler.start()
        logger.info("Session purge scheduler started")

    logger.info(f"TrailVerse API started, providers: {app.state.provider_registry.available_providers()}")

@app.on_event("shutdown")
async def shutdown_event():
    if app.state.scheduler is not None:
        app.state.scheduler.shutdown(wait=False)
        app.state.scheduler = None

    logger.info("TrailVerse API stopped")

app.include_router(api_router, prefix=settings.API_PREFIX)

@app.get("/", tags=["health"])
def read_root():
    response = {
        "message": "Welcome to TrailVerse API",
        "version": settings.VERSION,
    }
    if settings.ENVIRONMENT == "development":
        response["docs_url"] = docs_url
    return response
