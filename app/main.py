"""
F1 Race Replay Backend - FastAPI Application
"""
# app/main.py
import asyncio
import time
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.core.logging import setup_logging, get_logger
from app.db import SessionLocal, init_db
from app.schemas.common import AppInfoResponse
from app.services import race_store
from app.services.live_pipeline import refresh_race_cache
from app.services.openf1_client import OpenF1Client

import app.routers.health as health
import app.routers.races as races


# Setup logging
settings = get_settings()
setup_logging(settings.log_level)
logger = get_logger(__name__)

# lets the client roll over to the new hour before the swap
SWAP_BUFFER_S = 0.5


def seconds_until_next_swap(now: float, interval_s: float) -> float:
    """Seconds until the next wall-clock multiple of `interval_s`, plus a small buffer."""
    return interval_s - (now % interval_s) + SWAP_BUFFER_S


def swap_current_race(app: FastAPI) -> int | None:
    """Select a new race to serve, avoiding the current one when possible."""
    db = SessionLocal()
    try:
        current = getattr(app.state, "current_race_key", None)
        key = race_store.pick_race_key(db, exclude=current, force_key=settings.force_race_key)
    finally:
        db.close()

    app.state.current_race_key = key
    if key is not None:
        logger.info(f"Selected race {key}")
    return key


async def race_swap_loop(app: FastAPI) -> None:
    """Pick a new race at each wall-clock interval boundary."""
    while True:
        await asyncio.sleep(seconds_until_next_swap(time.time(), settings.race_swap_interval_s))
        try:
            swap_current_race(app)
        except Exception:
            logger.exception("Race swap failed, keeping the current race")


async def prefetch_once(client: OpenF1Client) -> None:
    """One prefetch round; errors are logged so the loop keeps running."""
    db = SessionLocal()
    try:
        await refresh_race_cache(client, db, settings)
    except Exception:
        logger.exception("Prefetch round failed")
    finally:
        db.close()


async def prefetch_loop() -> None:
    """Slowly fill the store with live races, one per interval."""
    async with OpenF1Client(settings) as client:
        while True:
            await prefetch_once(client)
            await asyncio.sleep(settings.prefetch_interval_s)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else settings.database_url}")
    logger.info(f"Prefetch: {'enabled' if settings.prefetch_enabled else 'disabled'}")
    logger.info("=" * 60)

    init_db()
    if swap_current_race(app) is None:
        logger.warning("No cached races yet")

    tasks = [asyncio.create_task(race_swap_loop(app))]
    if settings.prefetch_enabled:
        tasks.append(asyncio.create_task(prefetch_loop()))

    yield

    # Shutdown
    logger.info("Shutting down application")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    F1 Race Replay Backend API

    Features:
    - Canonical race records on a bounded playback clock
    - Live-era races built from OpenF1 trajectories
    - Historical races rebuilt from Ergast lap timings and circuit geometry
    """,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(races.router)


@app.get("/", response_model=AppInfoResponse)
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
