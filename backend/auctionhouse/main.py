"""Auction house — FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auctionhouse.config import settings
from auctionhouse.database import init_db
from auctionhouse.routers import auctions, bids, winnings
from auctionhouse.scheduler import init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then run the settlement scheduler for the app's lifetime."""
    init_db()
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    else:
        logger.info("Settlement scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    shutdown_scheduler()


# ── CORS origins from env (supports dev localhost + production domain) ──────
_cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app = FastAPI(
    title="Auction House",
    description="Auction lifecycle and settlement engine.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auctions.router)
app.include_router(bids.router)
app.include_router(winnings.router)


@app.get("/health")
def health():
    return {"status": "ok", "scheduler_enabled": settings.SCHEDULER_ENABLED}
