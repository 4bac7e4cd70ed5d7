"""SQLAlchemy ORM models for the Dynasty database.

Teams are global (seeded once, shared by every guild). Everything else is
scoped to a guild: configuration, league meta, team assignments, season
records, game results, job offers, press releases, and streamer handles.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class GuildConfigRow(Base):
    """One row per guild. Defaults here match ``GuildConfig`` defaults."""

    __tablename__ = "guild_configs"

    guild_id: Mapped[str] = mapped_column(String(30), primary_key=True)
    league_name: Mapped[str] = mapped_column(String(100), default="Dynasty League")
    league_abbreviation: Mapped[str] = mapped_column(String(20), default="")
    setup_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    league_type: Mapped[str] = mapped_column(String(20), default="new")

    feature_job_offers: Mapped[bool] = mapped_column(Boolean, default=True)
    feature_stream_reminders: Mapped[bool] = mapped_column(Boolean, default=True)
    feature_advance_system: Mapped[bool] = mapped_column(Boolean, default=True)
    feature_press_releases: Mapped[bool] = mapped_column(Boolean, default=True)
    feature_rankings: Mapped[bool] = mapped_column(Boolean, default=True)
    feature_streaming_list: Mapped[bool] = mapped_column(Boolean, default=True)

    channel_news_feed: Mapped[str] = mapped_column(String(100), default="news-feed")
    channel_advance_tracker: Mapped[str] = mapped_column(String(100), default="advance-tracker")
    channel_team_lists: Mapped[str] = mapped_column(String(100), default="team-lists")
    channel_signed_coaches: Mapped[str] = mapped_column(String(100), default="signed-coaches")
    channel_streaming: Mapped[str] = mapped_column(String(100), default="streaming")

    role_head_coach: Mapped[str] = mapped_column(String(100), default="head coach")
    role_head_coach_id: Mapped[str | None] = mapped_column(String(30), nullable=True)

    star_rating_for_offers: Mapped[float] = mapped_column(Float, default=2.5)
    star_rating_max_for_offers: Mapped[float | None] = mapped_column(Float, nullable=True)
    job_offers_count: Mapped[int] = mapped_column(Integer, default=3)
    job_offers_expiry_hours: Mapped[int] = mapped_column(Integer, default=48)

    stream_reminder_minutes: Mapped[int] = mapped_column(Integer, default=45)

    advance_intervals: Mapped[str] = mapped_column(Text, default="[24, 48]")
    advance_timezones: Mapped[str] = mapped_column(
        Text,
        default='["America/New_York", "America/Chicago", "America/Denver", "America/Los_Angeles"]',
    )

    embed_color_primary: Mapped[str] = mapped_column(String(10), default="0x1e90ff")
    embed_color_win: Mapped[str] = mapped_column(String(10), default="0x00ff00")
    embed_color_loss: Mapped[str] = mapped_column(String(10), default="0xff0000")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class LeagueMetaRow(Base):
    """Season / phase position for one guild. Written only by advance and setup."""

    __tablename__ = "league_meta"

    guild_id: Mapped[str] = mapped_column(String(30), primary_key=True)
    season: Mapped[int] = mapped_column(Integer, default=1)
    week: Mapped[int] = mapped_column(Integer, default=1)
    current_phase: Mapped[str] = mapped_column(String(30), default="preseason")
    current_sub_phase: Mapped[int] = mapped_column(Integer, default=0)
    advance_hours: Mapped[int] = mapped_column(Integer, default=24)
    advance_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class TeamRow(Base):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    star_rating: Mapped[float] = mapped_column(Float, default=0.0)
    conference: Mapped[str] = mapped_column(String(100), default="")

    assignments: Mapped[list[TeamAssignmentRow]] = relationship(back_populates="team")


class TeamAssignmentRow(Base):
    """Binds a team to a coach within one guild. Unique on (team, guild)."""

    __tablename__ = "team_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    user_id: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    team: Mapped[TeamRow] = relationship(back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("team_id", "guild_id", name="uq_assignment_team_guild"),
        Index("ix_assignments_guild_user", "guild_id", "user_id"),
    )


class SeasonRecordRow(Base):
    __tablename__ = "season_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)

    team: Mapped[TeamRow] = relationship()

    __table_args__ = (
        UniqueConstraint("team_id", "season", "guild_id", name="uq_record_team_season_guild"),
        Index("ix_records_guild_season", "guild_id", "season"),
    )


class GameResultRow(Base):
    """One submitted game. Immutable once written."""

    __tablename__ = "game_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    season: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    team1_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    team2_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    score1: Mapped[int] = mapped_column(Integer, nullable=False)
    score2: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_by: Mapped[str] = mapped_column(String(30), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    team1: Mapped[TeamRow] = relationship(foreign_keys=[team1_id])
    team2: Mapped[TeamRow] = relationship(foreign_keys=[team2_id])

    __table_args__ = (Index("ix_game_results_guild_season_week", "guild_id", "season", "week"),)


class JobOfferRow(Base):
    """Time-bounded lock on a team for one user in one guild."""

    __tablename__ = "job_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    user_id: Mapped[str] = mapped_column(String(30), nullable=False)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    team: Mapped[TeamRow] = relationship()

    __table_args__ = (
        Index("ix_job_offers_guild_user", "guild_id", "user_id"),
        Index("ix_job_offers_expires_at", "expires_at"),
    )


class NewsFeedRow(Base):
    """Press releases posted to a guild's news feed."""

    __tablename__ = "news_feed"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    author_id: Mapped[str] = mapped_column(String(30), nullable=False)
    team_name: Mapped[str] = mapped_column(String(100), default="")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class StreamerRow(Base):
    """A coach's streaming handle (Twitch/YouTube) within one guild."""

    __tablename__ = "streamers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(30), nullable=False)
    user_id: Mapped[str] = mapped_column(String(30), nullable=False)
    handle: Mapped[str] = mapped_column(String(200), nullable=False)
    platform: Mapped[str] = mapped_column(String(20), default="twitch")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint("guild_id", "user_id", name="uq_streamer_guild_user"),)
