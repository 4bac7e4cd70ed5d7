"""Admin team administration: assign, reset, move, and list.

A user holds at most one team per guild. Assigning or moving a coach
removes their previous assignment before writing the new one.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import COACH_MOVED, COACH_SIGNED, EventBus
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.league import Team, TeamStatus
from dynasty.models.outcomes import (
    CoachMoved,
    Rejected,
    RejectReason,
    TeamAssigned,
    TeamListing,
    TeamReset,
)

logger = logging.getLogger(__name__)


async def _place_coach(
    repo: Repository, guild_id: str, user_id: str, team_name: str
) -> tuple[Team, Team | None] | Rejected:
    """Move *user_id* onto *team_name*, freeing whatever they held before."""
    team_row = await repo.find_team_by_name(team_name)
    if team_row is None:
        return Rejected(RejectReason.TEAM_NOT_FOUND, f"Team `{team_name}` not found.")
    team = Team.model_validate(team_row)

    holder = await repo.get_assignment_for_team(guild_id, team.id)
    if holder is not None and holder.user_id != user_id:
        return Rejected(
            RejectReason.ALREADY_TAKEN, f"{team.team_name} is already assigned to another coach."
        )

    current = await repo.get_assignment_for_user(guild_id, user_id)
    previous = None
    if current is not None and current.team_id != team.id:
        previous = Team.model_validate(current.team)
        await repo.delete_assignment(current.team_id, guild_id)
    await repo.upsert_assignment(team.id, user_id, guild_id)
    return team, previous


async def assign_team(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    user_id: str,
    team_name: str,
    *,
    announce: bool = True,
) -> TeamAssigned | Rejected:
    """Directly assign a team, bypassing the offer ledger."""
    config = await configs.get(guild_id)
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before assigning teams.")

    async with get_session(engine) as session:
        placed = await _place_coach(Repository(session), guild_id, user_id, team_name)
    if isinstance(placed, Rejected):
        return placed
    team, previous = placed

    logger.info(
        "team_assigned guild=%s user=%s team=%s previous=%s",
        guild_id,
        user_id,
        team.team_name,
        previous.team_name if previous else None,
    )
    await bus.publish(
        COACH_SIGNED,
        {
            "guild_id": guild_id,
            "user_id": user_id,
            "team_name": team.team_name,
            "conference": team.conference,
            "star_rating": team.star_rating,
            "source": "admin",
            "announce": announce,
        },
    )
    return TeamAssigned(team=team, user_id=user_id, previous_team=previous)


async def reset_team(engine: AsyncEngine, guild_id: str, user_id: str) -> TeamReset | Rejected:
    async with get_session(engine) as session:
        repo = Repository(session)
        current = await repo.get_assignment_for_user(guild_id, user_id)
        if current is None:
            return Rejected(RejectReason.NO_TEAM, "That user doesn't have a team assigned.")
        team = Team.model_validate(current.team)
        await repo.delete_assignment(current.team_id, guild_id)

    logger.info("team_reset guild=%s user=%s team=%s", guild_id, user_id, team.team_name)
    return TeamReset(team=team, user_id=user_id)


async def move_coach(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    user_id: str,
    team_name: str,
) -> CoachMoved | TeamAssigned | Rejected:
    """Move a coach to *team_name*.

    A user with no current team is simply assigned, which returns
    ``TeamAssigned`` instead of ``CoachMoved``.
    """
    config = await configs.get(guild_id)
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before moving coaches.")

    async with get_session(engine) as session:
        placed = await _place_coach(Repository(session), guild_id, user_id, team_name)
    if isinstance(placed, Rejected):
        return placed
    team, previous = placed
    if previous is None:
        logger.info(
            "coach_move_as_assign guild=%s user=%s team=%s", guild_id, user_id, team.team_name
        )
        return TeamAssigned(team=team, user_id=user_id)

    logger.info(
        "coach_moved guild=%s user=%s from=%s to=%s",
        guild_id,
        user_id,
        previous.team_name,
        team.team_name,
    )
    await bus.publish(
        COACH_MOVED,
        {
            "guild_id": guild_id,
            "user_id": user_id,
            "from_team": previous.team_name,
            "to_team": team.team_name,
        },
    )
    return CoachMoved(user_id=user_id, from_team=previous, to_team=team)


async def list_teams(engine: AsyncEngine, guild_id: str) -> TeamListing:
    """Every team, split into taken and available for *guild_id*."""
    async with get_session(engine) as session:
        repo = Repository(session)
        teams = await repo.list_all_teams()
        holders = {a.team_id: a.user_id for a in await repo.list_assignments(guild_id)}
        statuses = [
            TeamStatus(team=Team.model_validate(row), user_id=holders.get(row.id)) for row in teams
        ]
    return TeamListing(
        taken=[s for s in statuses if s.taken],
        available=[s for s in statuses if not s.taken],
    )
