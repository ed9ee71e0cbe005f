"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from syncbridge.api import dashboard, sync, webhooks
from syncbridge.config import settings
from syncbridge.models.base import init_db
from syncbridge.scheduler import dispatcher
from syncbridge.security import BasicAuthMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting Redmine/Jira Sync Service")
    init_db()
    dispatcher.start()
    yield
    # Shutdown
    logger.info("Stopping Redmine/Jira Sync Service")
    dispatcher.stop()


app = FastAPI(
    title="Redmine/Jira Sync Service",
    description="Synchronize issues between Redmine and Jira",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth for the operator API. Webhooks authenticate with signatures.
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        allow_paths={"/health"},
        allow_prefixes=("/webhooks/",),
    )

# Include API routers
app.include_router(webhooks.router)
app.include_router(sync.router)
app.include_router(dashboard.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Redmine/Jira Sync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "syncbridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
