"""FastAPI application entry point for Omnidesk."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.api.v1.router import router as api_v1_router
from app.api.webhooks import router as webhooks_router
from app.config import get_settings
from app.database import engine
from app.logging_config import configure_logging
from app.services.dispatch import get_dispatch

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    logger.info("Starting Omnidesk API...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Database: {settings.async_database_url.split('@')[-1]}")  # Hide credentials

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    configured = [name for name, ok in get_dispatch().configured().items() if ok]
    logger.info(f"Configured platforms: {', '.join(configured) or 'none'}")

    yield

    # Shutdown
    logger.info("Shutting down Omnidesk API...")
    await get_dispatch().close()
    await engine.dispose()


app = FastAPI(
    title="Omnidesk API",
    description="Unified inbox for WhatsApp, Telegram, Facebook, Instagram and email conversations",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins = [
    settings.frontend_url,
    "http://localhost:3000",  # Local development
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins if not settings.is_development else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Platforms call webhooks at the root, agents use /api/v1
app.include_router(webhooks_router)
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Omnidesk API",
        "version": "0.1.0",
        "description": "Multi-platform messaging inbox",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Global health check."""
    return {"status": "ok"}
