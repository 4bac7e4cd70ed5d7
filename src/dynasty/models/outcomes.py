"""Result types returned by league operations.

Precondition failures come back as ``Rejected`` values, never as
exceptions, and leave the store untouched. Each success has its own
frozen dataclass so callers can ``match`` on the outcome.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from enum import StrEnum

from dynasty.models.league import GameResult, JobOffer, Phase, SeasonRecord, Team, TeamStatus


class RejectReason(StrEnum):
    FEATURE_DISABLED = "feature_disabled"
    SETUP_INCOMPLETE = "setup_incomplete"
    INVALID_INTERVAL = "invalid_interval"
    NO_RESPONSE = "no_response"
    ALREADY_HAS_TEAM = "already_has_team"
    NO_TEAM = "no_team"
    NO_ELIGIBLE_TEAMS = "no_eligible_teams"
    OFFER_UNAVAILABLE = "offer_unavailable"
    ALREADY_TAKEN = "already_taken"
    TEAM_NOT_FOUND = "team_not_found"
    SAME_TEAM = "same_team"
    INVALID_SCORE = "invalid_score"
    INVALID_SETTING = "invalid_setting"
    INVALID_POSITION = "invalid_position"
    EMPTY_MESSAGE = "empty_message"


@dataclasses.dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    message: str


# --- League state machine ---


@dataclasses.dataclass(frozen=True)
class Advanced:
    season: int
    phase: Phase
    sub_phase: int
    week: int
    label: str
    hours: int
    deadline: datetime
    rollover: bool = False
    skipped_to_conf_champ: bool = False


@dataclasses.dataclass(frozen=True)
class SeasonAdvanced:
    previous_season: int
    season: int


@dataclasses.dataclass(frozen=True)
class GuildInitialized:
    guild_id: str
    created: bool


@dataclasses.dataclass(frozen=True)
class SetupCompleted:
    guild_id: str
    league_type: str
    season: int
    phase: Phase
    sub_phase: int


# --- Job offers ---


@dataclasses.dataclass(frozen=True)
class OffersIssued:
    """A user's current batch. ``existing`` is True when an earlier batch was re-sent."""

    offers: list[JobOffer]
    expires_at: datetime
    existing: bool = False

    @property
    def teams(self) -> list[Team]:
        return [offer.team for offer in self.offers]


@dataclasses.dataclass(frozen=True)
class OfferAccepted:
    team: Team
    forfeited: int


@dataclasses.dataclass(frozen=True)
class SweepResult:
    expired: int
    notified_users: int


# --- Roster ---


@dataclasses.dataclass(frozen=True)
class TeamAssigned:
    team: Team
    user_id: str
    previous_team: Team | None = None


@dataclasses.dataclass(frozen=True)
class TeamReset:
    team: Team
    user_id: str


@dataclasses.dataclass(frozen=True)
class CoachMoved:
    user_id: str
    from_team: Team
    to_team: Team


@dataclasses.dataclass(frozen=True)
class TeamListing:
    taken: list[TeamStatus]
    available: list[TeamStatus]


# --- Results ---


@dataclasses.dataclass(frozen=True)
class GameRecorded:
    result: GameResult
    team1_record: SeasonRecord
    team2_record: SeasonRecord


@dataclasses.dataclass(frozen=True)
class Standing:
    team: Team
    wins: int
    losses: int

    @property
    def games(self) -> int:
        return self.wins + self.losses

    @property
    def win_pct(self) -> float:
        return self.wins / self.games if self.games else 0.0


# --- Config / news / streams ---


@dataclasses.dataclass(frozen=True)
class ConfigEdited:
    setting: str
    value: object


@dataclasses.dataclass(frozen=True)
class PressReleasePosted:
    item_id: int
    team_name: str
    message: str


@dataclasses.dataclass(frozen=True)
class StreamerSaved:
    user_id: str
    handle: str
    platform: str
