"""Discord embed builders for the dynasty bot.

Each builder takes domain data (result objects or event payloads) plus
the guild's configuration for colors and returns an embed ready to send.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

import discord

from dynasty.models.guild_config import EDITABLE_SETTINGS, FEATURE_FLAGS

if TYPE_CHECKING:
    from dynasty.models.guild_config import GuildConfig
    from dynasty.models.league import Team
    from dynasty.models.outcomes import OffersIssued, Standing, StreamerSaved, TeamListing

COLOR_TIE = 0xFFA500
FIELD_LIMIT = 1024

_TZ_LABELS: dict[str, str] = {
    "America/New_York": "ET",
    "America/Chicago": "CT",
    "America/Denver": "MT",
    "America/Los_Angeles": "PT",
}


def _footer(embed: discord.Embed, config: GuildConfig) -> discord.Embed:
    embed.set_footer(text=config.league_name)
    return embed


def _clip(text: str, limit: int = FIELD_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def star_rating(rating: float) -> str:
    """``4.5`` -> ``"4.5⭐"``; zero ratings render as an empty string."""
    return f"{rating:g}⭐" if rating else ""


def format_deadline(deadline: datetime, timezones: list[str]) -> str:
    """One line per configured timezone, e.g. ``ET: **Oct 19, 3:00 PM**``."""
    lines = []
    for name in timezones:
        local = deadline.astimezone(ZoneInfo(name))
        stamp = f"{local:%b} {local.day}, {local.hour % 12 or 12}:{local:%M %p}"
        lines.append(f"{_TZ_LABELS.get(name, name)}: **{stamp}**")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# League state
# ---------------------------------------------------------------------------


def build_advance_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    label = str(data["label"])
    embed = discord.Embed(
        title=f"Advance: Season {data['season']}, {label}",
        description=(
            f"The league is advancing to **{label}**!\n"
            f"All games must be completed within **{data['hours']} hours**."
        ),
        color=config.color_primary,
    )
    deadline = datetime.fromisoformat(str(data["deadline"]))
    embed.add_field(
        name="Deadline",
        value=format_deadline(deadline, list(data.get("timezones") or config.advance_timezones)),
        inline=False,
    )
    return _footer(embed, config)


def build_week_recap_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(
        title=f"{data['label']} Recap: Season {data['season']}",
        color=config.color_primary,
    )
    results = data.get("results") or []
    if not results:
        embed.description = "No results were recorded this week."
        return _footer(embed, config)
    lines = [
        f"**{r['team1']}** {r['score1']} - {r['score2']} **{r['team2']}**" for r in results
    ]
    embed.description = _clip("\n".join(lines), 4096)
    return _footer(embed, config)


def build_new_season_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(
        title=f"Season {data['season']} Has Begun!",
        description=(
            f"Season **{data['previous_season']}** is over! "
            f"Welcome to **Season {data['season']}**!\nAll records reset. Good luck!"
        ),
        color=config.color_primary,
    )
    return _footer(embed, config)


# ---------------------------------------------------------------------------
# Job offers and coaches
# ---------------------------------------------------------------------------


def build_offers_embed(issued: OffersIssued, config: GuildConfig) -> discord.Embed:
    title = "Your Current Job Offers" if issued.existing else "Your Job Offers"
    embed = discord.Embed(
        title=title,
        description=(
            "Pick one team below. Accepting an offer forfeits the others.\n"
            f"Offers expire <t:{int(issued.expires_at.timestamp())}:R>."
        ),
        color=config.color_primary,
    )
    for team in issued.teams:
        parts = (team.conference, star_rating(team.star_rating))
        details = " · ".join(part for part in parts if part)
        embed.add_field(name=team.team_name, value=details or "--", inline=False)
    return _footer(embed, config)


def build_offers_expired_embed(team_names: list[str], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(
        title="Job Offers Expired",
        description=(
            "Your job offers have expired and these teams are back in the pool:\n"
            + "\n".join(f"- {name}" for name in team_names)
            + "\n\nRun `/joboffers` to get a new batch."
        ),
        color=config.color_loss,
    )
    return _footer(embed, config)


def build_signed_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    team_name = str(data["team_name"])
    embed = discord.Embed(
        title=f"Coach Signed: {team_name}",
        description=f"<@{data['user_id']}> has been signed as head coach of **{team_name}**!",
        color=config.color_primary,
    )
    embed.add_field(name="Coach", value=f"<@{data['user_id']}>", inline=True)
    embed.add_field(name="Team", value=team_name, inline=True)
    if data.get("conference"):
        embed.add_field(name="Conference", value=str(data["conference"]), inline=True)
    return _footer(embed, config)


def build_moved_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(
        title="Coach Moved",
        description=f"<@{data['user_id']}> has moved to **{data['to_team']}**.",
        color=config.color_primary,
    )
    embed.add_field(name="From", value=str(data["from_team"]), inline=True)
    embed.add_field(name="To", value=str(data["to_team"]), inline=True)
    return _footer(embed, config)


def _available_line(team: Team) -> str:
    stars = star_rating(team.star_rating)
    return f"**{team.team_name}** ({stars})" if stars else f"**{team.team_name}**"


def build_team_list_embed(listing: TeamListing, config: GuildConfig) -> discord.Embed:
    taken = "\n".join(f"**{s.team.team_name}** -- <@{s.user_id}>" for s in listing.taken)
    available = "\n".join(_available_line(s.team) for s in listing.available)
    embed = discord.Embed(title=f"{config.league_name}: Team List", color=config.color_primary)
    embed.add_field(
        name=f"Taken Teams ({len(listing.taken)})", value=_clip(taken or "_None_"), inline=False
    )
    embed.add_field(
        name=f"Available Teams ({len(listing.available)})",
        value=_clip(available or "_None, all teams taken!_"),
        inline=False,
    )
    embed.set_footer(text="Contact an admin to join the league!")
    return embed


# ---------------------------------------------------------------------------
# Results and rankings
# ---------------------------------------------------------------------------


def build_game_result_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    score1, score2 = int(data["score1"]), int(data["score2"])
    if score1 == score2:
        color, verdict = COLOR_TIE, "TIE"
    elif score1 > score2:
        color, verdict = config.color_win, "WIN"
    else:
        color, verdict = config.color_loss, "LOSS"
    embed = discord.Embed(
        title=f"Game Result: Season {data['season']} Week {data['week']}",
        description=f"**{data['team1']}** vs **{data['team2']}**",
        color=color,
    )
    embed.add_field(name=str(data["team1"]), value=str(score1), inline=True)
    embed.add_field(name=verdict, value="--", inline=True)
    embed.add_field(name=str(data["team2"]), value=str(score2), inline=True)
    wins1, losses1 = data["team1_record"]
    wins2, losses2 = data["team2_record"]
    embed.add_field(name=f"{data['team1']} Record", value=f"{wins1}-{losses1}", inline=True)
    embed.add_field(name=f"{data['team2']} Record", value=f"{wins2}-{losses2}", inline=True)
    return _footer(embed, config)


def build_standings_embed(
    standings: list[Standing],
    config: GuildConfig,
    title: str,
    *,
    show_pct: bool = False,
) -> discord.Embed:
    embed = discord.Embed(title=title, color=config.color_primary)
    if not standings:
        embed.description = "No records found."
        return _footer(embed, config)
    lines = []
    for i, row in enumerate(standings, 1):
        line = f"**{i}.** {row.team.team_name} -- {row.wins}W - {row.losses}L"
        if show_pct:
            line += f" ({row.win_pct * 100:.1f}%)"
        lines.append(line)
    embed.description = _clip("\n".join(lines), 4096)
    return _footer(embed, config)


# ---------------------------------------------------------------------------
# News, config, streamers
# ---------------------------------------------------------------------------


def build_press_release_embed(data: dict[str, Any], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(
        title=f"Press Release: {data['team_name']}",
        description=str(data["message"]),
        color=config.color_primary,
    )
    embed.set_footer(text=f"Posted by {data.get('author') or data['team_name']}")
    return embed


def build_config_embed(config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(title=f"{config.league_name}: Configuration", color=config.color_primary)
    embed.add_field(
        name="League",
        value=(
            f"Name: {config.league_name}\n"
            f"Abbreviation: {config.league_abbreviation or '--'}\n"
            f"Type: {config.league_type}\n"
            f"Setup complete: {'yes' if config.setup_complete else 'no'}"
        ),
        inline=False,
    )
    features = "\n".join(
        f"{'on ' if getattr(config, flag) else 'off'} {flag.removeprefix('feature_')}"
        for flag in FEATURE_FLAGS
    )
    embed.add_field(name="Features", value=f"```\n{features}\n```", inline=False)
    settings = "\n".join(
        f"{name}: {_setting_display(config, name)}"
        for name in EDITABLE_SETTINGS
        if name not in ("league_name", "league_abbreviation")
    )
    embed.add_field(name="Settings", value=_clip(f"```\n{settings}\n```"), inline=False)
    return embed


def _setting_display(config: GuildConfig, name: str) -> str:
    if name.startswith("embed_color_"):
        return f"0x{getattr(config, name.replace('embed_', '')):06x}"
    value = getattr(config, name)
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return "--" if value is None else str(value)


def build_streamers_embed(streamers: list[StreamerSaved], config: GuildConfig) -> discord.Embed:
    embed = discord.Embed(title=f"{config.league_name}: Streamers", color=config.color_primary)
    if not streamers:
        embed.description = "No streamers registered yet. Use `/streamer` to add yours."
        return _footer(embed, config)
    lines = [f"<@{s.user_id}> -- {s.platform}: {s.handle}" for s in streamers]
    embed.description = _clip("\n".join(lines), 4096)
    return _footer(embed, config)
