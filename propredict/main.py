"""
ProPredict API - FastAPI Application Entry Point

Football tips platform backend with:
- Tier-based content entitlements and rewarded-ad unlocks
- Arena picks against the AI model
- API-Football proxy for match, league and fixture data
- OneSignal push notifications (goal alerts, new content, wins)
- Stripe (web) and RevenueCat (Android) subscription webhooks
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from propredict.config import get_settings
from propredict.routers import (
    arena_router,
    content_router,
    football_router,
    health_router,
    jobs_router,
    me_router,
    unlocks_router,
    webhooks_router,
)
from propredict.services.football_api import football_api
from propredict.services.onesignal import onesignal

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Startup: Log configuration
    - Shutdown: Close the upstream HTTP clients
    """
    logger.info(f"Starting ProPredict API ({settings.app_env})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    yield

    logger.info("Shutting down ProPredict API")
    await football_api.close()
    await onesignal.close()


app = FastAPI(
    title="ProPredict API",
    description="Football tips, arena and live score backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(me_router)
app.include_router(content_router)
app.include_router(unlocks_router)
app.include_router(arena_router)
app.include_router(football_router)
app.include_router(jobs_router)
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "ProPredict API",
        "version": "1.0.0",
        "status": "operational",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "propredict.main:app",
        host="0.0.0.0",
        port=8000,
        # Pending ad watches are held in this process
        workers=1,
        reload=not settings.is_production,
    )
