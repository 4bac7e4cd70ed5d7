"""League advance: move a guild one step through the season cycle.

``advance_league`` is the only runtime writer of a guild's position. It
checks preconditions, computes the next position from the phase table,
asks the invoking admin whether to play Week 15 when that slot comes up,
reads the finished week's results, and then commits the new position
with a fresh deadline. The commit is conditional on the league still
sitting where it was read, so two admins advancing at once move it one
step.

The week recap is built from results read before the pointer moves, but it
is published after the conditional commit succeeds and ahead of the
``league.advanced`` announcement. An advance that loses the race therefore
announces nothing, recap included.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.config import DEFAULT_WEEK15_PROMPT_SECONDS
from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import LEAGUE_ADVANCED, LEAGUE_NEW_SEASON, LEAGUE_WEEK_RECAP, EventBus
from dynasty.core.guilds import load_meta
from dynasty.core.phases import (
    Position,
    is_week15_entry,
    next_position,
    skip_to_conference_championship,
)
from dynasty.core.results import week_results
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.guild_config import GuildConfig
from dynasty.models.league import Phase
from dynasty.models.outcomes import Advanced, Rejected, RejectReason, SeasonAdvanced

logger = logging.getLogger(__name__)

# Resolves True to play Week 15, False to skip to conference championships,
# None when the admin dismissed the prompt.
Week15Chooser = Callable[[Position], Awaitable[bool | None]]


def _check_advance_allowed(config: GuildConfig) -> Rejected | None:
    if not config.feature_advance_system:
        return Rejected(RejectReason.FEATURE_DISABLED, "The advance system is disabled.")
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before advancing.")
    return None


async def _ask_week15(
    guild_id: str,
    target: Position,
    choose: Week15Chooser | None,
    timeout: float,
) -> Position | Rejected:
    if choose is None:
        return target
    try:
        choice = await asyncio.wait_for(choose(target), timeout=timeout)
    except TimeoutError:
        logger.info("advance_week15_timeout guild=%s", guild_id)
        return Rejected(RejectReason.NO_RESPONSE, "No choice made. The league was not advanced.")
    if choice is None:
        return Rejected(RejectReason.NO_RESPONSE, "Advance cancelled. The league was not advanced.")
    if choice:
        return target
    logger.info("advance_week15_skip guild=%s season=%d", guild_id, target.season)
    return skip_to_conference_championship(target.season)


async def advance_league(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    hours: int | None = None,
    *,
    choose_week15: Week15Chooser | None = None,
    prompt_timeout: float = DEFAULT_WEEK15_PROMPT_SECONDS,
    now: datetime | None = None,
) -> Advanced | Rejected:
    """Advance *guild_id* one position and announce a deadline *hours* from now.

    *hours* must be one of the guild's allowed advance intervals; when
    omitted the first configured interval is used. Every rejection leaves
    the stored position untouched.
    """
    config = await configs.get(guild_id)
    if (rejected := _check_advance_allowed(config)) is not None:
        return rejected

    hours = config.default_advance_hours if hours is None else hours
    if hours not in config.advance_intervals:
        allowed = ", ".join(str(h) for h in config.advance_intervals)
        return Rejected(
            RejectReason.INVALID_INTERVAL,
            f"{hours}h is not an allowed advance window. Choose one of: {allowed}.",
        )

    async with get_session(engine) as session:
        repo = Repository(session)
        meta = await load_meta(repo, guild_id)
        stored = await repo.get_meta(guild_id)
        stored_phase = stored.current_phase if stored is not None else None

    target = next_position(meta.season, meta.current_phase, meta.current_sub_phase)
    skipped = False
    if is_week15_entry(target):
        chosen = await _ask_week15(guild_id, target, choose_week15, prompt_timeout)
        if isinstance(chosen, Rejected):
            return chosen
        skipped = chosen != target
        target = chosen

    # The recap covers the week being closed, so it is read before the pointer moves.
    recap = None
    if meta.current_phase == Phase.REGULAR:
        results = await week_results(engine, guild_id, meta.season, meta.week)
        recap = {
            "guild_id": guild_id,
            "season": meta.season,
            "week": meta.week,
            "label": f"Week {meta.current_sub_phase}",
            "results": [
                {
                    "team1": r.team1.team_name,
                    "team2": r.team2.team_name,
                    "score1": r.score1,
                    "score2": r.score2,
                }
                for r in results
            ],
        }

    moment = now or datetime.now(UTC)
    deadline = moment + timedelta(hours=hours)
    fields = {
        "season": target.season,
        "week": target.week,
        "current_phase": target.phase.value,
        "current_sub_phase": target.sub_phase,
        "advance_hours": hours,
        "advance_deadline": deadline,
    }
    async with get_session(engine) as session:
        repo = Repository(session)
        if stored_phase is None:
            await repo.upsert_meta(guild_id, **fields)
            moved = True
        else:
            moved = await repo.update_meta_if_at(
                guild_id, meta.season, stored_phase, meta.current_sub_phase, **fields
            )
    if not moved:
        logger.warning("advance_conflict guild=%s", guild_id)
        return Rejected(
            RejectReason.INVALID_POSITION,
            "The league was advanced by someone else in the meantime.",
        )

    if recap is not None:
        await bus.publish(LEAGUE_WEEK_RECAP, recap)

    advanced = Advanced(
        season=target.season,
        phase=target.phase,
        sub_phase=target.sub_phase,
        week=target.week,
        label=target.label,
        hours=hours,
        deadline=deadline,
        rollover=target.rollover,
        skipped_to_conf_champ=skipped,
    )
    logger.info(
        "league_advanced guild=%s season=%d phase=%s sub=%d hours=%d",
        guild_id,
        advanced.season,
        advanced.phase,
        advanced.sub_phase,
        hours,
    )
    await bus.publish(
        LEAGUE_ADVANCED,
        {
            "guild_id": guild_id,
            "season": advanced.season,
            "phase": advanced.phase.value,
            "sub_phase": advanced.sub_phase,
            "label": advanced.label,
            "week": advanced.week,
            "hours": hours,
            "deadline": deadline.isoformat(),
            "timezones": list(config.advance_timezones),
        },
    )
    if advanced.rollover:
        await bus.publish(
            LEAGUE_NEW_SEASON,
            {"guild_id": guild_id, "season": advanced.season, "previous_season": meta.season},
        )
    return advanced


async def advance_season(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
) -> SeasonAdvanced | Rejected:
    """Jump straight to next season's preseason and clear the deadline."""
    config = await configs.get(guild_id)
    if (rejected := _check_advance_allowed(config)) is not None:
        return rejected

    async with get_session(engine) as session:
        repo = Repository(session)
        meta = await load_meta(repo, guild_id)
        await repo.upsert_meta(
            guild_id,
            season=meta.season + 1,
            week=1,
            current_phase=Phase.PRESEASON.value,
            current_sub_phase=0,
            advance_deadline=None,
        )

    logger.info("season_advanced guild=%s season=%d", guild_id, meta.season + 1)
    await bus.publish(
        LEAGUE_NEW_SEASON,
        {"guild_id": guild_id, "season": meta.season + 1, "previous_season": meta.season},
    )
    return SeasonAdvanced(previous_season=meta.season, season=meta.season + 1)
