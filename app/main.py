"""
Audience Campaigns - main API
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import setup_logging
from app.api.error_handlers import register_exception_handlers
from app.api.routes import campaigns, dashboard, data, health
from app.contexts.campaigns.application import get_delivery_orchestrator
from app.services.redis import close_redis_connection

# Configure logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    yield
    # Delivery runs belong to this process; cancel them before exiting
    if get_delivery_orchestrator.cache_info().currsize:
        await get_delivery_orchestrator().shutdown()
    await close_redis_connection()
    logger.info(f"Stopping {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Audience segmentation and simulated campaign delivery",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(campaigns.router)
app.include_router(data.router)
app.include_router(dashboard.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "status": "running",
        "docs": "/docs",
    }
