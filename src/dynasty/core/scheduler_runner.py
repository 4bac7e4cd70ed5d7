"""Scheduled background jobs.

``run_offer_sweep`` is invoked by APScheduler every
``settings.dynasty_offer_sweep_minutes`` and once at startup.
``self_ping`` keeps free-tier hosts from idling the process.

Errors are logged but never propagated so the scheduler keeps running.
"""

from __future__ import annotations

import logging

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.event_bus import EventBus
from dynasty.core.offers import sweep_expired_offers
from dynasty.models.outcomes import SweepResult

logger = logging.getLogger(__name__)

SELF_PING_TIMEOUT_SECONDS = 10.0


async def run_offer_sweep(engine: AsyncEngine, event_bus: EventBus) -> SweepResult | None:
    """Release expired job offers. Returns None when the sweep failed."""
    try:
        return await sweep_expired_offers(engine, event_bus)
    except SQLAlchemyError:
        logger.exception("offer_sweep_failed")
        return None


async def self_ping(url: str, client: httpx.AsyncClient | None = None) -> int | None:
    """GET *url* and return the status code, or None if the request failed."""
    try:
        if client is not None:
            response = await client.get(url)
        else:
            async with httpx.AsyncClient(timeout=SELF_PING_TIMEOUT_SECONDS) as fresh:
                response = await fresh.get(url)
    except httpx.HTTPError as exc:
        logger.warning("self_ping_failed url=%s error=%s", url, exc)
        return None
    logger.debug("self_ping url=%s status=%d", url, response.status_code)
    return response.status_code
