"""
Treasury Agent API
FastAPI backend for drift-triggered rebalancing and delegated fee claiming
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.cron_sweep import start_scheduler, stop_scheduler
from api.treasury_router import router as treasury_router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Treasury Agent API",
    description="Autonomous treasury agent: policy evaluation, authorized execution, fee claiming",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

app.include_router(treasury_router)


@app.on_event("startup")
async def on_startup():
    if settings.cron_interval_seconds > 0:
        start_scheduler(settings.cron_interval_seconds)
    else:
        logger.info("[Startup] CRON_INTERVAL_SECONDS not set, relying on external cron")


@app.on_event("shutdown")
async def on_shutdown():
    stop_scheduler()


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment platforms"""
    return {"status": "healthy", "service": "treasury-agent"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
