"""FastAPI application factory.

The web app is a thin shell: its lifespan owns the database engine, the
configuration cache, the event bus, the Discord bot, and the scheduler.
``GET /health`` answers host health checks.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.config import Settings
from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import EventBus
from dynasty.core.scheduler_runner import run_offer_sweep, self_ping
from dynasty.db.engine import create_engine, create_tables

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings, engine: AsyncEngine, bus: EventBus) -> AsyncIOScheduler:
    """Offer-expiry sweep (first pass at startup) plus the optional keep-alive ping."""
    jobs = AsyncIOScheduler()
    jobs.add_job(
        run_offer_sweep,
        IntervalTrigger(minutes=settings.dynasty_offer_sweep_minutes),
        id="offer_sweep",
        name="Expire job offers",
        kwargs={"engine": engine, "event_bus": bus},
        next_run_time=datetime.now(UTC),
        replace_existing=True,
    )
    if settings.dynasty_self_ping_url:
        jobs.add_job(
            self_ping,
            IntervalTrigger(minutes=settings.dynasty_self_ping_minutes),
            id="self_ping",
            name="Keep-alive ping",
            kwargs={"url": settings.dynasty_self_ping_url},
            replace_existing=True,
        )
    return jobs


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    columns_added = await create_tables(engine)
    if columns_added:
        logger.info("schema_migrated columns_added=%d", columns_added)

    bus = EventBus()
    configs = ConfigCache(engine)
    app.state.engine = engine
    app.state.event_bus = bus
    app.state.configs = configs

    from dynasty.discord.bot import is_discord_enabled, start_discord_bot

    bot = None
    if is_discord_enabled(settings):
        bot = await start_discord_bot(settings, bus, engine, configs)
    logger.info("discord_bot enabled=%s", bot is not None)
    app.state.discord_bot = bot

    jobs = build_scheduler(settings, engine, bus)
    jobs.start()
    app.state.scheduler = jobs
    logger.info(
        "scheduler_started sweep_minutes=%d self_ping=%s",
        settings.dynasty_offer_sweep_minutes,
        bool(settings.dynasty_self_ping_url),
    )
    try:
        yield
    finally:
        jobs.shutdown(wait=False)
        if bot is not None:
            await bot.close()
        await engine.dispose()
        logger.info("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the league bot's web shell; settings default to the environment."""
    if settings is None:
        settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.dynasty_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    api = FastAPI(
        title="Dynasty League Bot",
        description="Discord bot for college-football dynasty leagues",
        version="0.1.0",
        docs_url=None if settings.dynasty_env == "production" else "/docs",
        lifespan=lifespan,
    )
    api.state.settings = settings

    @api.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return api


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the host and port from settings."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "dynasty.main:app",
        host=settings.dynasty_host,
        port=settings.dynasty_port,
        log_level=settings.dynasty_log_level.lower(),
    )
