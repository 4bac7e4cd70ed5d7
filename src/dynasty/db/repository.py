"""Repository pattern for database access.

Wraps one SQLAlchemy async session. Every store operation the league core
needs lives here: guild configuration, the global team roster and
per-guild assignments, league meta and season records, game results, the
job-offer ledger, press releases, and streamer handles.

Keyed upserts (assignments, records) use SQLite ``ON CONFLICT`` so the
unique constraint is the point of truth: a racing second write
overwrites instead of duplicating.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dynasty.db.models import (
    GameResultRow,
    GuildConfigRow,
    JobOfferRow,
    LeagueMetaRow,
    NewsFeedRow,
    SeasonRecordRow,
    StreamerRow,
    TeamAssignmentRow,
    TeamRow,
)


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Guild configuration ---

    async def get_guild_config(self, guild_id: str) -> GuildConfigRow | None:
        return await self.session.get(GuildConfigRow, guild_id)

    async def upsert_guild_config(self, guild_id: str, fields: dict[str, Any]) -> GuildConfigRow:
        """Create the guild's config row if missing, then apply *fields*."""
        row = await self.session.get(GuildConfigRow, guild_id)
        if row is None:
            row = GuildConfigRow(guild_id=guild_id)
            self.session.add(row)
        for key, value in fields.items():
            if not hasattr(GuildConfigRow, key) or key == "guild_id":
                raise ValueError(f"Unknown guild config column: {key}")
            setattr(row, key, value)
        await self.session.flush()
        return row

    # --- Teams (global) ---

    async def create_team(
        self,
        team_name: str,
        star_rating: float = 0.0,
        conference: str = "",
    ) -> TeamRow:
        """Seed a team. The league core never calls this."""
        row = TeamRow(team_name=team_name, star_rating=star_rating, conference=conference)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_team(self, team_id: int) -> TeamRow | None:
        return await self.session.get(TeamRow, team_id)

    async def find_team_by_name(self, name: str) -> TeamRow | None:
        """Case-insensitive exact match on team name."""
        stmt = select(TeamRow).where(func.lower(TeamRow.team_name) == name.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_all_teams(self) -> list[TeamRow]:
        stmt = select(TeamRow).order_by(TeamRow.team_name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_teams_by_rating(
        self,
        min_rating: float,
        max_rating: float | None = None,
    ) -> list[TeamRow]:
        """Teams with ``min_rating <= star_rating [<= max_rating]``, best first."""
        stmt = select(TeamRow).where(TeamRow.star_rating >= min_rating)
        if max_rating is not None:
            stmt = stmt.where(TeamRow.star_rating <= max_rating)
        stmt = stmt.order_by(TeamRow.star_rating.desc(), TeamRow.team_name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def search_teams(self, query: str, limit: int = 25) -> list[TeamRow]:
        """Substring search on team name, for autocomplete."""
        stmt = (
            select(TeamRow)
            .where(TeamRow.team_name.ilike(f"%{query}%"))
            .order_by(TeamRow.team_name)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Team assignments (per guild) ---

    async def get_assignment_for_user(
        self, guild_id: str, user_id: str
    ) -> TeamAssignmentRow | None:
        stmt = (
            select(TeamAssignmentRow)
            .where(
                TeamAssignmentRow.guild_id == guild_id,
                TeamAssignmentRow.user_id == user_id,
            )
            .options(selectinload(TeamAssignmentRow.team))
            .order_by(TeamAssignmentRow.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_assignment_for_team(
        self, guild_id: str, team_id: int
    ) -> TeamAssignmentRow | None:
        stmt = (
            select(TeamAssignmentRow)
            .where(
                TeamAssignmentRow.guild_id == guild_id,
                TeamAssignmentRow.team_id == team_id,
            )
            .options(selectinload(TeamAssignmentRow.team))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_assignments(self, guild_id: str) -> list[TeamAssignmentRow]:
        stmt = (
            select(TeamAssignmentRow)
            .where(TeamAssignmentRow.guild_id == guild_id)
            .options(selectinload(TeamAssignmentRow.team))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_assignment(self, team_id: int, user_id: str, guild_id: str) -> None:
        """Assign *team_id* to *user_id* in *guild_id*; last write wins."""
        stmt = sqlite_insert(TeamAssignmentRow).values(
            team_id=team_id, user_id=user_id, guild_id=guild_id
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["team_id", "guild_id"],
            set_={"user_id": stmt.excluded.user_id},
        )
        await self.session.execute(stmt)

    async def claim_team(self, team_id: int, user_id: str, guild_id: str) -> bool:
        """Insert an assignment only if the team is free in *guild_id*.

        Returns False when another user already holds the team.
        """
        stmt = (
            sqlite_insert(TeamAssignmentRow)
            .values(team_id=team_id, user_id=user_id, guild_id=guild_id)
            .on_conflict_do_nothing(index_elements=["team_id", "guild_id"])
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def delete_assignment(self, team_id: int, guild_id: str) -> int:
        stmt = delete(TeamAssignmentRow).where(
            TeamAssignmentRow.team_id == team_id,
            TeamAssignmentRow.guild_id == guild_id,
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    # --- League meta ---

    async def get_meta(self, guild_id: str) -> LeagueMetaRow | None:
        return await self.session.get(LeagueMetaRow, guild_id)

    async def upsert_meta(self, guild_id: str, **fields: Any) -> LeagueMetaRow:
        row = await self.session.get(LeagueMetaRow, guild_id)
        if row is None:
            row = LeagueMetaRow(guild_id=guild_id)
            self.session.add(row)
        for key, value in fields.items():
            setattr(row, key, value)
        await self.session.flush()
        return row

    async def update_meta_if_at(
        self,
        guild_id: str,
        season: int,
        phase: str,
        sub_phase: int,
        **fields: Any,
    ) -> bool:
        """Update the meta row only if it still sits at ``(season, phase, sub_phase)``.

        Returns False when another writer moved the league first.
        """
        stmt = (
            update(LeagueMetaRow)
            .where(
                LeagueMetaRow.guild_id == guild_id,
                LeagueMetaRow.season == season,
                LeagueMetaRow.current_phase == phase,
                LeagueMetaRow.current_sub_phase == sub_phase,
            )
            .values(**fields, updated_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    # --- Season records ---

    async def get_record(self, team_id: int, season: int, guild_id: str) -> SeasonRecordRow | None:
        stmt = (
            select(SeasonRecordRow)
            .where(
                SeasonRecordRow.team_id == team_id,
                SeasonRecordRow.season == season,
                SeasonRecordRow.guild_id == guild_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_record(
        self, team_id: int, season: int, guild_id: str, wins: int, losses: int
    ) -> None:
        """Overwrite a record. Used for imports; game results use ``increment_record``."""
        stmt = sqlite_insert(SeasonRecordRow).values(
            team_id=team_id, season=season, guild_id=guild_id, wins=wins, losses=losses
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["team_id", "season", "guild_id"],
            set_={"wins": stmt.excluded.wins, "losses": stmt.excluded.losses},
        )
        await self.session.execute(stmt)

    async def increment_record(
        self,
        team_id: int,
        season: int,
        guild_id: str,
        wins: int = 0,
        losses: int = 0,
    ) -> None:
        """Add to a record in one statement, creating it on first write."""
        stmt = sqlite_insert(SeasonRecordRow).values(
            team_id=team_id, season=season, guild_id=guild_id, wins=wins, losses=losses
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["team_id", "season", "guild_id"],
            set_={
                "wins": SeasonRecordRow.wins + stmt.excluded.wins,
                "losses": SeasonRecordRow.losses + stmt.excluded.losses,
            },
        )
        await self.session.execute(stmt)

    async def list_records(
        self, guild_id: str, season: int | None = None
    ) -> list[SeasonRecordRow]:
        stmt = (
            select(SeasonRecordRow)
            .where(SeasonRecordRow.guild_id == guild_id)
            .options(selectinload(SeasonRecordRow.team))
            .order_by(SeasonRecordRow.wins.desc(), SeasonRecordRow.losses)
            .execution_options(populate_existing=True)
        )
        if season is not None:
            stmt = stmt.where(SeasonRecordRow.season == season)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Game results ---

    async def add_game_result(
        self,
        guild_id: str,
        season: int,
        week: int,
        team1_id: int,
        team2_id: int,
        score1: int,
        score2: int,
        submitted_by: str,
    ) -> GameResultRow:
        row = GameResultRow(
            guild_id=guild_id,
            season=season,
            week=week,
            team1_id=team1_id,
            team2_id=team2_id,
            score1=score1,
            score2=score2,
            submitted_by=submitted_by,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_game_results(
        self, guild_id: str, season: int, week: int | None = None
    ) -> list[GameResultRow]:
        stmt = (
            select(GameResultRow)
            .where(GameResultRow.guild_id == guild_id, GameResultRow.season == season)
            .options(selectinload(GameResultRow.team1), selectinload(GameResultRow.team2))
            .order_by(GameResultRow.id)
        )
        if week is not None:
            stmt = stmt.where(GameResultRow.week == week)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Job-offer ledger ---

    def _offer_filter(
        self,
        stmt: Any,
        guild_id: str | None,
        user_id: str | None,
        team_id: int | None,
        active_at: datetime | None,
        expired_by: datetime | None,
    ) -> Any:
        if guild_id is not None:
            stmt = stmt.where(JobOfferRow.guild_id == guild_id)
        if user_id is not None:
            stmt = stmt.where(JobOfferRow.user_id == user_id)
        if team_id is not None:
            stmt = stmt.where(JobOfferRow.team_id == team_id)
        if active_at is not None:
            stmt = stmt.where(JobOfferRow.expires_at > active_at)
        if expired_by is not None:
            stmt = stmt.where(JobOfferRow.expires_at <= expired_by)
        return stmt

    async def list_offers(
        self,
        *,
        guild_id: str | None = None,
        user_id: str | None = None,
        team_id: int | None = None,
        active_at: datetime | None = None,
        expired_by: datetime | None = None,
    ) -> list[JobOfferRow]:
        """List ledger rows. ``active_at`` keeps rows expiring after that instant."""
        stmt = self._offer_filter(
            select(JobOfferRow).options(selectinload(JobOfferRow.team)),
            guild_id,
            user_id,
            team_id,
            active_at,
            expired_by,
        ).order_by(JobOfferRow.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def insert_offers(self, offers: list[dict[str, Any]]) -> list[JobOfferRow]:
        rows = [JobOfferRow(**offer) for offer in offers]
        self.session.add_all(rows)
        await self.session.flush()
        return rows

    async def delete_offers(
        self,
        *,
        guild_id: str | None = None,
        user_id: str | None = None,
        expired_by: datetime | None = None,
    ) -> int:
        if guild_id is None and user_id is None and expired_by is None:
            raise ValueError("delete_offers requires at least one filter")
        stmt = self._offer_filter(
            delete(JobOfferRow), guild_id, user_id, None, None, expired_by
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_offer(self, offer_id: int) -> bool:
        """Delete one ledger row. False if another sweep already removed it."""
        result = await self.session.execute(delete(JobOfferRow).where(JobOfferRow.id == offer_id))
        return bool(result.rowcount)

    # --- News feed ---

    async def add_news_item(
        self, guild_id: str, author_id: str, team_name: str, message: str
    ) -> NewsFeedRow:
        row = NewsFeedRow(
            guild_id=guild_id, author_id=author_id, team_name=team_name, message=message
        )
        self.session.add(row)
        await self.session.flush()
        return row

    # --- Streamers ---

    async def upsert_streamer(
        self, guild_id: str, user_id: str, handle: str, platform: str
    ) -> StreamerRow:
        stmt = select(StreamerRow).where(
            StreamerRow.guild_id == guild_id, StreamerRow.user_id == user_id
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = StreamerRow(guild_id=guild_id, user_id=user_id, handle=handle, platform=platform)
            self.session.add(row)
        else:
            row.handle = handle
            row.platform = platform
        await self.session.flush()
        return row

    async def list_streamers(self, guild_id: str) -> list[StreamerRow]:
        stmt = select(StreamerRow).where(StreamerRow.guild_id == guild_id).order_by(StreamerRow.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

