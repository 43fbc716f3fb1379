"""Expiry reaper: retires abandoned welcome orders.

Open orders (PENDING / IN_PROGRESS, recorded flag false) that nobody has
touched for `order_expiry_days` are moved to EXPIRED, which takes them out
of resume. CANCELLED is never set here.

Runs as an asyncio loop started from the FastAPI lifespan, and once on
demand via `python -m signup.cli expire-orders`.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from signup.config import settings
from signup.database import async_session
from signup.models.welcome_order import WelcomeOrderStatus
from signup.services import store

logger = logging.getLogger("signup.reaper")


async def expire_stale_orders(db: AsyncSession, older_than_days: int) -> int:
    """Mark stale open orders EXPIRED. Returns how many were expired."""
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)
    stale = await store.list_stale_orders(db, cutoff)

    now = datetime.utcnow()
    for order in stale:
        logger.info(
            "Expiring order %s (%s), idle since %s",
            order.order_number, order.id, order.updated_at.isoformat(),
        )
        order.status = WelcomeOrderStatus.EXPIRED
        order.updated_at = now
    await db.flush()
    return len(stale)


async def run_reaper_once(older_than_days: int | None = None) -> int:
    days = older_than_days if older_than_days is not None else settings.order_expiry_days
    async with async_session() as db:
        try:
            count = await expire_stale_orders(db, days)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    logger.info("Expired %d welcome orders older than %d days", count, days)
    return count


async def _reaper_loop() -> None:
    while True:
        await asyncio.sleep(settings.reaper_interval_seconds)
        try:
            await run_reaper_once()
        except Exception:
            logger.exception("Unhandled error in welcome order reaper")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the reaper on startup, cancel on shutdown."""
    if not settings.reaper_enabled:
        yield
        return

    task = asyncio.create_task(_reaper_loop())
    logger.info(
        "Welcome order reaper started (every %ss, expiry %s days)",
        settings.reaper_interval_seconds,
        settings.order_expiry_days,
    )
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Welcome order reaper stopped")
