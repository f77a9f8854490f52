"""Background pallet completion sweep and app lifespan.

Reservations normally complete their pallet at booking time; the sweep
catches the rest (admin edits to capacity or reservations, bookings made
while a completion check failed).  It is a plain asyncio sleep loop started
from FastAPI's lifespan, no external scheduler.

The lifespan also owns the per-process resources routes depend on:
    app.state.geocoder          Geocoder (shared httpx client)
    app.state.validation_cache  ValidationCache for GET /api/cart/validate

Configuration:
    COMPLETION_SWEEP_ENABLED=true
    COMPLETION_SWEEP_MINUTES=15
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vinepallet.config import settings
from vinepallet.database import async_session
from vinepallet.services.geo import Geocoder
from vinepallet.utils.cache import close_redis
from vinepallet.utils.validation_cache import ValidationCache

logger = logging.getLogger("vinepallet.scheduler")


async def run_completion_sweep() -> int:
    """Check every incomplete pallet once.  Returns how many were completed."""
    from vinepallet.services.pallet_capacity import check_all_pallets

    async with async_session() as db:
        try:
            outcomes = await check_all_pallets(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    completed = sum(1 for o in outcomes if o.was_completed)
    failed = sum(1 for o in outcomes if o.error)
    logger.info(
        "Completion sweep: %d pallet(s) checked, %d completed, %d failed",
        len(outcomes), completed, failed,
    )
    return completed


async def _sweep_loop() -> None:
    interval = max(1, settings.completion_sweep_minutes) * 60
    while True:
        await asyncio.sleep(interval)
        try:
            await run_completion_sweep()
        except Exception:
            logger.exception("Unhandled error in pallet completion sweep")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: set up shared resources and the completion sweep."""
    app.state.geocoder = Geocoder()
    app.state.validation_cache = ValidationCache(
        ttl_seconds=settings.validation_cache_ttl_seconds,
        max_entries=settings.validation_cache_max_entries,
    )

    task = None
    if settings.completion_sweep_enabled:
        task = asyncio.create_task(_sweep_loop())
        logger.info("Pallet completion sweep started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Pallet completion sweep stopped")
        await app.state.geocoder.aclose()
        await close_redis()
