"""Game results, season records, and standings.

A decisive result adds one win to the winner's season record and one
loss to the loser's. A tie is stored but touches neither record. Both
record writes are additive single-statement upserts, so counters only
ever grow.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import GAME_RECORDED, EventBus
from dynasty.core.guilds import load_meta
from dynasty.db.engine import get_session
from dynasty.db.models import TeamRow
from dynasty.db.repository import Repository
from dynasty.models.league import GameResult, SeasonRecord, Team
from dynasty.models.outcomes import GameRecorded, Rejected, RejectReason, Standing

logger = logging.getLogger(__name__)

MAX_SCORE = 999


def _check_scores(score1: int, score2: int) -> Rejected | None:
    if not (0 <= score1 <= MAX_SCORE and 0 <= score2 <= MAX_SCORE):
        return Rejected(RejectReason.INVALID_SCORE, f"Scores must be between 0 and {MAX_SCORE}.")
    return None


async def _store_result(
    repo: Repository,
    guild_id: str,
    team1: TeamRow,
    team2: TeamRow,
    score1: int,
    score2: int,
    submitted_by: str,
) -> GameRecorded:
    meta = await load_meta(repo, guild_id)
    row = await repo.add_game_result(
        guild_id=guild_id,
        season=meta.season,
        week=meta.week,
        team1_id=team1.id,
        team2_id=team2.id,
        score1=score1,
        score2=score2,
        submitted_by=submitted_by,
    )
    if score1 != score2:
        winner, loser = (team1, team2) if score1 > score2 else (team2, team1)
        await repo.increment_record(winner.id, meta.season, guild_id, wins=1)
        await repo.increment_record(loser.id, meta.season, guild_id, losses=1)

    records = []
    for team in (team1, team2):
        record = await repo.get_record(team.id, meta.season, guild_id)
        if record is None:
            records.append(SeasonRecord(team_id=team.id, season=meta.season, guild_id=guild_id))
        else:
            records.append(SeasonRecord.model_validate(record))

    result = GameResult(
        id=row.id,
        guild_id=guild_id,
        season=meta.season,
        week=meta.week,
        team1=Team.model_validate(team1),
        team2=Team.model_validate(team2),
        score1=score1,
        score2=score2,
        submitted_by=submitted_by,
    )
    return GameRecorded(result=result, team1_record=records[0], team2_record=records[1])


async def _publish_result(bus: EventBus, recorded: GameRecorded) -> None:
    result = recorded.result
    winner = result.winner
    await bus.publish(
        GAME_RECORDED,
        {
            "guild_id": result.guild_id,
            "season": result.season,
            "week": result.week,
            "team1": result.team1.team_name,
            "team2": result.team2.team_name,
            "score1": result.score1,
            "score2": result.score2,
            "winner": winner.team_name if winner else None,
            "team1_record": (recorded.team1_record.wins, recorded.team1_record.losses),
            "team2_record": (recorded.team2_record.wins, recorded.team2_record.losses),
        },
    )
    logger.info(
        "game_recorded guild=%s season=%d week=%d %s=%d %s=%d",
        result.guild_id,
        result.season,
        result.week,
        result.team1.team_name,
        result.score1,
        result.team2.team_name,
        result.score2,
    )


async def record_game_result(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    user_id: str,
    opponent_name: str,
    own_score: int,
    opponent_score: int,
) -> GameRecorded | Rejected:
    """Record a game the submitting coach played against *opponent_name*."""
    config = await configs.get(guild_id)
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before recording results.")
    if (bad := _check_scores(own_score, opponent_score)) is not None:
        return bad

    async with get_session(engine) as session:
        repo = Repository(session)
        assignment = await repo.get_assignment_for_user(guild_id, user_id)
        if assignment is None:
            return Rejected(RejectReason.NO_TEAM, "You don't have a team in this league.")
        opponent = await repo.find_team_by_name(opponent_name)
        if opponent is None:
            return Rejected(RejectReason.TEAM_NOT_FOUND, f"No team named `{opponent_name}`.")
        if opponent.id == assignment.team_id:
            return Rejected(RejectReason.SAME_TEAM, "A team cannot play itself.")
        recorded = await _store_result(
            repo, guild_id, assignment.team, opponent, own_score, opponent_score, user_id
        )

    await _publish_result(bus, recorded)
    return recorded


async def record_any_game_result(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    submitted_by: str,
    team1_name: str,
    team2_name: str,
    score1: int,
    score2: int,
) -> GameRecorded | Rejected:
    """Admin entry of a game between any two teams."""
    config = await configs.get(guild_id)
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before recording results.")
    if (bad := _check_scores(score1, score2)) is not None:
        return bad

    async with get_session(engine) as session:
        repo = Repository(session)
        team1 = await repo.find_team_by_name(team1_name)
        if team1 is None:
            return Rejected(RejectReason.TEAM_NOT_FOUND, f"No team named `{team1_name}`.")
        team2 = await repo.find_team_by_name(team2_name)
        if team2 is None:
            return Rejected(RejectReason.TEAM_NOT_FOUND, f"No team named `{team2_name}`.")
        if team1.id == team2.id:
            return Rejected(RejectReason.SAME_TEAM, "A team cannot play itself.")
        recorded = await _store_result(repo, guild_id, team1, team2, score1, score2, submitted_by)

    await _publish_result(bus, recorded)
    return recorded


async def week_results(
    engine: AsyncEngine, guild_id: str, season: int, week: int
) -> list[GameResult]:
    async with get_session(engine) as session:
        rows = await Repository(session).list_game_results(guild_id, season, week)
        return [GameResult.model_validate(row) for row in rows]


def _sort_standings(standings: list[Standing]) -> list[Standing]:
    return sorted(standings, key=lambda s: (-s.wins, s.losses, s.team.team_name))


async def season_standings(
    engine: AsyncEngine, guild_id: str, season: int | None = None
) -> list[Standing]:
    """Win/loss table for one season (the current one when *season* is None)."""
    async with get_session(engine) as session:
        repo = Repository(session)
        if season is None:
            season = (await load_meta(repo, guild_id)).season
        rows = await repo.list_records(guild_id, season)
        standings = [
            Standing(team=Team.model_validate(row.team), wins=row.wins, losses=row.losses)
            for row in rows
        ]
    return _sort_standings(standings)


async def all_time_rankings(engine: AsyncEngine, guild_id: str) -> list[Standing]:
    """Records summed across every season, best win percentage first."""
    async with get_session(engine) as session:
        rows = await Repository(session).list_records(guild_id)
        teams: dict[int, Team] = {}
        totals: dict[int, list[int]] = defaultdict(lambda: [0, 0])
        for row in rows:
            teams[row.team_id] = Team.model_validate(row.team)
            totals[row.team_id][0] += row.wins
            totals[row.team_id][1] += row.losses

    standings = [
        Standing(team=teams[team_id], wins=wins, losses=losses)
        for team_id, (wins, losses) in totals.items()
    ]
    return sorted(standings, key=lambda s: (-s.win_pct, -s.wins, s.team.team_name))
