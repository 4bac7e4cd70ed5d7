"""League domain models: teams, assignments, meta, records, offers, results.

All models accept ORM rows directly (``model_validate(row)``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; every stored instant is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Phase(StrEnum):
    """The nine stages of a dynasty season, in cycle order."""

    PRESEASON = "preseason"
    REGULAR = "regular"
    CONF_CHAMP = "conf_champ"
    BOWL = "bowl"
    PLAYERS_LEAVING = "players_leaving"
    TRANSFER_PORTAL = "transfer_portal"
    POSITION_CHANGES = "position_changes"
    TRAINING_RESULTS = "training_results"
    ENCOURAGE_TRANSFERS = "encourage_transfers"


class _RowModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Team(_RowModel):
    """A coachable program. Global across guilds; seeded externally."""

    id: int
    team_name: str
    star_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    conference: str = ""


class TeamStatus(BaseModel):
    """A team plus its assignment in one guild (``user_id`` is None when open)."""

    team: Team
    user_id: str | None = None

    @property
    def taken(self) -> bool:
        return self.user_id is not None


class LeagueMeta(_RowModel):
    """Where a guild's league sits in the season cycle."""

    guild_id: str
    season: int = Field(default=1, ge=1)
    week: int = Field(default=1, ge=1)
    current_phase: Phase = Phase.PRESEASON
    current_sub_phase: int = Field(default=0, ge=0)
    advance_hours: int = 24
    advance_deadline: datetime | None = None

    _normalize_deadline = field_validator("advance_deadline")(ensure_utc)


class SeasonRecord(_RowModel):
    team_id: int
    season: int
    guild_id: str
    wins: int = 0
    losses: int = 0


class JobOffer(_RowModel):
    """An exclusive, time-bounded option on ``team`` for ``user_id``."""

    id: int
    guild_id: str
    user_id: str
    team: Team
    expires_at: datetime

    _normalize_expiry = field_validator("expires_at")(ensure_utc)


class GameResult(_RowModel):
    id: int
    guild_id: str
    season: int
    week: int
    team1: Team
    team2: Team
    score1: int
    score2: int
    submitted_by: str = ""

    @property
    def winner(self) -> Team | None:
        if self.score1 == self.score2:
            return None
        return self.team1 if self.score1 > self.score2 else self.team2
