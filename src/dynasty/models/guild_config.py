"""Per-guild league configuration.

The database stores a handful of fields as loosely-typed text (interval
lists, timezone lists, hex colors). ``parse_guild_config`` turns a stored
row into a fully-populated ``GuildConfig`` and never raises: malformed
values fall back to the documented defaults and are reported as
``ConfigWarning`` entries for the caller to log.
"""

from __future__ import annotations

import dataclasses
import json
import math
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

DEFAULT_LEAGUE_NAME = "Dynasty League"
DEFAULT_ADVANCE_INTERVALS: tuple[int, ...] = (24, 48)
DEFAULT_ADVANCE_TIMEZONES: tuple[str, ...] = (
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
)
DEFAULT_COLOR_PRIMARY = 0x1E90FF
DEFAULT_COLOR_WIN = 0x00FF00
DEFAULT_COLOR_LOSS = 0xFF0000

# Longest advance window or offer lifetime an admin may configure (one year).
MAX_HOURS = 24 * 365

# Upper bounds for the whole-number settings.
POSITIVE_INT_LIMITS: dict[str, int] = {
    "job_offers_count": 25,
    "job_offers_expiry_hours": MAX_HOURS,
    "stream_reminder_minutes": 7 * 24 * 60,
}

FEATURE_FLAGS: tuple[str, ...] = (
    "feature_job_offers",
    "feature_stream_reminders",
    "feature_advance_system",
    "feature_press_releases",
    "feature_rankings",
    "feature_streaming_list",
)

# Settings an admin may change with /config edit, mapped to their value type.
EDITABLE_SETTINGS: dict[str, str] = {
    "league_name": "text",
    "league_abbreviation": "text",
    "channel_news_feed": "channel",
    "channel_advance_tracker": "channel",
    "channel_team_lists": "channel",
    "channel_signed_coaches": "channel",
    "channel_streaming": "channel",
    "role_head_coach": "text",
    "star_rating_for_offers": "rating",
    "star_rating_max_for_offers": "optional_rating",
    "job_offers_count": "positive_int",
    "job_offers_expiry_hours": "positive_int",
    "stream_reminder_minutes": "positive_int",
    "advance_intervals": "intervals",
    "advance_timezones": "timezones",
    "embed_color_primary": "color",
    "embed_color_win": "color",
    "embed_color_loss": "color",
}


class GuildConfig(BaseModel):
    """Fully-defaulted configuration for one guild."""

    guild_id: str
    league_name: str = DEFAULT_LEAGUE_NAME
    league_abbreviation: str = ""
    setup_complete: bool = False
    league_type: Literal["new", "established"] = "new"

    feature_job_offers: bool = True
    feature_stream_reminders: bool = True
    feature_advance_system: bool = True
    feature_press_releases: bool = True
    feature_rankings: bool = True
    feature_streaming_list: bool = True

    channel_news_feed: str = "news-feed"
    channel_advance_tracker: str = "advance-tracker"
    channel_team_lists: str = "team-lists"
    channel_signed_coaches: str = "signed-coaches"
    channel_streaming: str = "streaming"

    role_head_coach: str = "head coach"
    role_head_coach_id: str | None = None

    star_rating_for_offers: float = 2.5
    star_rating_max_for_offers: float | None = None
    job_offers_count: int = Field(default=3, ge=1)
    job_offers_expiry_hours: int = Field(default=48, ge=1)

    stream_reminder_minutes: int = Field(default=45, ge=1)

    advance_intervals: list[int] = Field(default_factory=lambda: list(DEFAULT_ADVANCE_INTERVALS))
    advance_timezones: list[str] = Field(default_factory=lambda: list(DEFAULT_ADVANCE_TIMEZONES))

    color_primary: int = DEFAULT_COLOR_PRIMARY
    color_win: int = DEFAULT_COLOR_WIN
    color_loss: int = DEFAULT_COLOR_LOSS

    def channel_for(self, role: str) -> str:
        """Resolve a logical channel role (``news_feed``, ``advance_tracker``...) to its name."""
        return str(getattr(self, f"channel_{role}"))

    @property
    def default_advance_hours(self) -> int:
        return self.advance_intervals[0]


@dataclasses.dataclass(frozen=True)
class ConfigWarning:
    """A stored value that could not be parsed and was replaced by its default."""

    field: str
    raw: str
    reason: str


@dataclasses.dataclass(frozen=True)
class ParsedConfig:
    config: GuildConfig
    warnings: list[ConfigWarning] = dataclasses.field(default_factory=list)


# ---------------------------------------------------------------------------
# Tolerant parsers
# ---------------------------------------------------------------------------


def _split_list(raw: str) -> list[str]:
    """Split ``[a, b]``, ``["a", "b"]``, or ``a, b`` into stripped items."""
    text = raw.strip()
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, list):
            return [str(item).strip() for item in decoded]
        text = text.strip("[]")
    return [item.strip().strip("'\"") for item in text.split(",") if item.strip()]


def parse_intervals(raw: str) -> list[int]:
    """Parse an advance-interval list. Raises ValueError on malformed input."""
    items = _split_list(raw)
    if not items:
        raise ValueError("empty interval list")
    hours: list[int] = []
    for item in items:
        number = float(item)
        if not math.isfinite(number) or number <= 0 or number != int(number):
            raise ValueError(f"interval must be a positive whole number of hours: {item}")
        if number > MAX_HOURS:
            raise ValueError(f"interval must be at most {MAX_HOURS} hours: {item}")
        if int(number) not in hours:
            hours.append(int(number))
    return hours


def parse_timezones(raw: str) -> list[str]:
    """Parse a timezone list of IANA names. Raises ValueError on malformed input."""
    items = _split_list(raw)
    if not items:
        raise ValueError("empty timezone list")
    for name in items:
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"unknown timezone: {name}") from exc
    return items


def parse_color(raw: str) -> int:
    """Parse ``0x1e90ff``, ``#1e90ff`` or ``1e90ff``. Raises ValueError on malformed input."""
    text = raw.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    text = text.lstrip("#")
    value = int(text, 16)
    if not 0 <= value <= 0xFFFFFF:
        raise ValueError(f"color out of range: {raw}")
    return value


def parse_guild_config(guild_id: str, row: object | None) -> ParsedConfig:
    """Build a ``GuildConfig`` from a stored row (or ``None``).

    Missing rows and NULL columns take the defaults. Text-encoded lists and
    colors that fail to parse take the defaults and add a warning.
    """
    if row is None:
        return ParsedConfig(config=GuildConfig(guild_id=guild_id))

    warnings: list[ConfigWarning] = []
    defaults = GuildConfig(guild_id=guild_id)
    values: dict[str, Any] = {"guild_id": guild_id}

    for name in GuildConfig.model_fields:
        if name in ("guild_id", "advance_intervals", "advance_timezones") or name.startswith(
            "color_"
        ):
            continue
        raw = getattr(row, name, None)
        if raw is None:
            continue
        values[name] = raw

    if values.get("league_type") not in ("new", "established"):
        if "league_type" in values:
            warnings.append(
                ConfigWarning("league_type", str(values["league_type"]), "unknown league type")
            )
        values.pop("league_type", None)
    for name, limit in POSITIVE_INT_LIMITS.items():
        if name in values and not 1 <= int(values[name]) <= limit:
            warnings.append(
                ConfigWarning(name, str(values[name]), f"must be between 1 and {limit}")
            )
            values.pop(name)

    parsers: list[tuple[str, str, Any, Any]] = [
        ("advance_intervals", "advance_intervals", parse_intervals, defaults.advance_intervals),
        ("advance_timezones", "advance_timezones", parse_timezones, defaults.advance_timezones),
        ("embed_color_primary", "color_primary", parse_color, defaults.color_primary),
        ("embed_color_win", "color_win", parse_color, defaults.color_win),
        ("embed_color_loss", "color_loss", parse_color, defaults.color_loss),
    ]
    for column, field, parser, default in parsers:
        raw = getattr(row, column, None)
        if raw is None or raw == "":
            values[field] = default
            continue
        try:
            values[field] = parser(str(raw))
        except ValueError as exc:
            warnings.append(ConfigWarning(column, str(raw), str(exc)))
            values[field] = default

    return ParsedConfig(config=GuildConfig(**values), warnings=warnings)


# ---------------------------------------------------------------------------
# /config edit coercion
# ---------------------------------------------------------------------------


def coerce_setting(setting: str, value: str) -> Any:
    """Convert an admin-supplied text value to the stored column value.

    Raises KeyError for settings that are not editable and ValueError for
    values that do not parse.
    """
    kind = EDITABLE_SETTINGS[setting]
    text = value.strip()
    if kind in ("text", "channel"):
        if not text:
            raise ValueError("value must not be empty")
        return text.lstrip("#") if kind == "channel" else text
    if kind == "rating":
        rating = float(text)
        if not 0.0 <= rating <= 5.0:
            raise ValueError("star rating must be between 0 and 5")
        return rating
    if kind == "optional_rating":
        if text.lower() in ("none", "null", ""):
            return None
        return coerce_setting("star_rating_for_offers", text)
    if kind == "positive_int":
        number = int(text)
        limit = POSITIVE_INT_LIMITS[setting]
        if not 1 <= number <= limit:
            raise ValueError(f"value must be between 1 and {limit}")
        return number
    if kind == "intervals":
        return json.dumps(parse_intervals(text))
    if kind == "timezones":
        return json.dumps(parse_timezones(text))
    if kind == "color":
        return f"0x{parse_color(text):06x}"
    raise ValueError(f"unsupported setting type: {kind}")
