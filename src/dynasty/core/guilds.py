"""Guild lifecycle: first-join initialization and setup completion."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.core.phases import is_valid_position, normalize_phase, week_for
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.league import LeagueMeta, Phase, ensure_utc
from dynasty.models.outcomes import GuildInitialized, Rejected, RejectReason, SetupCompleted

logger = logging.getLogger(__name__)


async def load_meta(repo: Repository, guild_id: str) -> LeagueMeta:
    """Read the guild's league meta, defaulted when no row exists."""
    row = await repo.get_meta(guild_id)
    if row is None:
        return LeagueMeta(guild_id=guild_id)
    phase = normalize_phase(row.current_phase)
    return LeagueMeta(
        guild_id=guild_id,
        season=row.season,
        week=week_for(phase, row.current_sub_phase),
        current_phase=phase,
        current_sub_phase=row.current_sub_phase,
        advance_hours=row.advance_hours,
        advance_deadline=ensure_utc(row.advance_deadline),
    )


async def get_meta(engine: AsyncEngine, guild_id: str) -> LeagueMeta:
    async with get_session(engine) as session:
        return await load_meta(Repository(session), guild_id)


async def init_guild(
    engine: AsyncEngine,
    configs: ConfigCache,
    guild_id: str,
    guild_name: str,
) -> GuildInitialized:
    """Create the default config and meta rows for a guild seen for the first time.

    Safe to call on every startup: guilds that already have a config row
    are left alone.
    """
    async with get_session(engine) as session:
        repo = Repository(session)
        if await repo.get_guild_config(guild_id) is not None:
            logger.debug("guild_init_skipped guild=%s", guild_id)
            return GuildInitialized(guild_id=guild_id, created=False)
        await repo.upsert_guild_config(guild_id, {"league_name": guild_name or "Dynasty League"})
        if await repo.get_meta(guild_id) is None:
            await repo.upsert_meta(
                guild_id,
                season=1,
                week=1,
                current_phase=Phase.PRESEASON.value,
                current_sub_phase=0,
            )

    configs.invalidate(guild_id)
    logger.info("guild_initialized guild=%s name=%s", guild_id, guild_name)
    return GuildInitialized(guild_id=guild_id, created=True)


async def complete_setup(
    engine: AsyncEngine,
    configs: ConfigCache,
    guild_id: str,
    updates: dict[str, Any],
    league_type: str = "new",
    start: tuple[int, Phase | str, int] | None = None,
) -> SetupCompleted | Rejected:
    """Store the setup answers and mark the guild ready.

    ``established`` leagues import their current ``(season, phase, sub)``
    the first time setup completes. ``new`` leagues start at season 1
    preseason. Re-running setup afterwards only rewrites configuration.
    """
    if league_type not in ("new", "established"):
        return Rejected(RejectReason.INVALID_SETTING, f"Unknown league type `{league_type}`.")

    season, phase, sub_phase = 1, Phase.PRESEASON, 0
    if league_type == "established":
        if start is None:
            return Rejected(
                RejectReason.INVALID_POSITION,
                "Established leagues must provide their current season and phase.",
            )
        season = start[0]
        try:
            phase = normalize_phase(str(start[1]))
        except ValueError:
            return Rejected(RejectReason.INVALID_POSITION, f"Unknown phase `{start[1]}`.")
        sub_phase = start[2]
        if season < 1 or not is_valid_position(phase, sub_phase):
            return Rejected(
                RejectReason.INVALID_POSITION,
                f"Season {season}, {phase} slot {sub_phase} is not a valid starting point.",
            )

    already_complete = (await configs.get(guild_id)).setup_complete
    await configs.save(
        guild_id, {**updates, "league_type": league_type, "setup_complete": True}
    )

    if already_complete:
        meta = await get_meta(engine, guild_id)
        logger.info("setup_rerun guild=%s", guild_id)
        return SetupCompleted(
            guild_id=guild_id,
            league_type=league_type,
            season=meta.season,
            phase=meta.current_phase,
            sub_phase=meta.current_sub_phase,
        )

    async with get_session(engine) as session:
        await Repository(session).upsert_meta(
            guild_id,
            season=season,
            week=week_for(phase, sub_phase),
            current_phase=phase.value,
            current_sub_phase=sub_phase,
        )
    logger.info(
        "setup_complete guild=%s type=%s season=%d phase=%s sub=%d",
        guild_id,
        league_type,
        season,
        phase,
        sub_phase,
    )
    return SetupCompleted(
        guild_id=guild_id,
        league_type=league_type,
        season=season,
        phase=phase,
        sub_phase=sub_phase,
    )
