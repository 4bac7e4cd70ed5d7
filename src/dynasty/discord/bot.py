"""Discord bot for dynasty leagues.

Runs alongside FastAPI on the same event loop. Slash commands call into
``dynasty.core`` and reply to the invoking user; announcements flow the
other way, from the EventBus to each guild's configured channels or to a
coach's DMs.

The bot is optional: if DISCORD_BOT_TOKEN is not set, nothing starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import discord
from discord import Intents, app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core import event_bus as events
from dynasty.core.advance import advance_league, advance_season
from dynasty.core.guilds import complete_setup, get_meta, init_guild
from dynasty.core.news import post_press_release
from dynasty.core.offers import accept_offer, request_offers
from dynasty.core.phases import Position
from dynasty.core.results import (
    all_time_rankings,
    record_any_game_result,
    record_game_result,
    season_standings,
)
from dynasty.core.roster import assign_team, list_teams, move_coach, reset_team
from dynasty.core.streams import (
    StreamReminders,
    list_streamers,
    set_streamer_handle,
    stream_link_to_remind,
)
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.discord.embeds import (
    build_advance_embed,
    build_config_embed,
    build_game_result_embed,
    build_moved_embed,
    build_new_season_embed,
    build_offers_embed,
    build_offers_expired_embed,
    build_press_release_embed,
    build_signed_embed,
    build_standings_embed,
    build_streamers_embed,
    build_team_list_embed,
    build_week_recap_embed,
)
from dynasty.discord.views import OfferView, Week15ChoiceView, parse_accept_offer_id
from dynasty.models.guild_config import EDITABLE_SETTINGS, FEATURE_FLAGS, GuildConfig
from dynasty.models.outcomes import CoachMoved, Rejected

if TYPE_CHECKING:
    from dynasty.config import Settings
    from dynasty.core.config_cache import ConfigCache
    from dynasty.core.event_bus import EventBus

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong. Please try again in a moment."

# Event type -> logical channel it is announced in.
CHANNEL_FOR_EVENT: dict[str, str] = {
    events.LEAGUE_ADVANCED: "advance_tracker",
    events.LEAGUE_WEEK_RECAP: "advance_tracker",
    events.LEAGUE_NEW_SEASON: "news_feed",
    events.COACH_MOVED: "news_feed",
    events.GAME_RECORDED: "news_feed",
    events.NEWS_PRESS_RELEASE: "news_feed",
}

_SETTING_CHOICES = [app_commands.Choice(name=name, value=name) for name in EDITABLE_SETTINGS]
_FEATURE_CHOICES = [
    app_commands.Choice(name=flag.removeprefix("feature_"), value=flag) for flag in FEATURE_FLAGS
]


class DynastyBot(commands.Bot):
    """The dynasty league Discord bot.

    Runs in-process with FastAPI and serves every guild it is invited to.
    Per-guild behaviour comes from the shared ``ConfigCache``.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus,
        engine: AsyncEngine,
        configs: ConfigCache,
    ) -> None:
        intents = Intents.default()
        intents.message_content = True  # Stream-link detection
        intents.members = True  # Head-coach role grants

        super().__init__(
            command_prefix="!",
            intents=intents,
            description="Dynasty league commissioner: job offers, advances, and results.",
        )
        self.settings = settings
        self.event_bus = event_bus
        self.engine = engine
        self.configs = configs
        self.stream_reminders = StreamReminders()
        self._event_listener_task: asyncio.Task[None] | None = None
        self._runner_task: asyncio.Task[None] | None = None
        self._setup_commands()

    def _setup_commands(self) -> None:
        """Register slash commands on the bot's command tree."""

        @self.tree.command(name="joboffers", description="Get job offers for open head coach jobs")
        @app_commands.guild_only()
        async def joboffers_command(interaction: discord.Interaction) -> None:
            await self._handle_joboffers(interaction)

        @self.tree.command(name="game-result", description="Report the result of your game")
        @app_commands.guild_only()
        @app_commands.describe(
            opponent="The team you played",
            your_score="Your team's score",
            opponent_score="Your opponent's score",
        )
        async def game_result_command(
            interaction: discord.Interaction,
            opponent: str,
            your_score: app_commands.Range[int, 0, 999],
            opponent_score: app_commands.Range[int, 0, 999],
        ) -> None:
            await self._handle_game_result(interaction, opponent, your_score, opponent_score)

        @game_result_command.autocomplete("opponent")
        async def _opponent_autocomplete(
            interaction: discord.Interaction,
            current: str,
        ) -> list[app_commands.Choice[str]]:
            return await self._autocomplete_teams(current)

        @self.tree.command(name="any-game-result", description="Record a result between two teams")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        async def any_game_result_command(
            interaction: discord.Interaction,
            team1: str,
            team1_score: app_commands.Range[int, 0, 999],
            team2: str,
            team2_score: app_commands.Range[int, 0, 999],
        ) -> None:
            await self._handle_any_game_result(interaction, team1, team2, team1_score, team2_score)

        @any_game_result_command.autocomplete("team1")
        async def _team1_autocomplete(
            interaction: discord.Interaction,
            current: str,
        ) -> list[app_commands.Choice[str]]:
            return await self._autocomplete_teams(current)

        @any_game_result_command.autocomplete("team2")
        async def _team2_autocomplete(
            interaction: discord.Interaction,
            current: str,
        ) -> list[app_commands.Choice[str]]:
            return await self._autocomplete_teams(current)

        @self.tree.command(name="press-release", description="Post a press release to the news")
        @app_commands.guild_only()
        @app_commands.describe(message="What you want to announce")
        async def press_release_command(interaction: discord.Interaction, message: str) -> None:
            await self._handle_press_release(interaction, message)

        @self.tree.command(name="ranking", description="Standings for the current season")
        @app_commands.guild_only()
        async def ranking_command(interaction: discord.Interaction) -> None:
            await self._handle_ranking(interaction, all_time=False)

        @self.tree.command(name="ranking-all-time", description="All-time standings")
        @app_commands.guild_only()
        async def ranking_all_time_command(interaction: discord.Interaction) -> None:
            await self._handle_ranking(interaction, all_time=True)

        @self.tree.command(name="listteams", description="Show taken and available teams")
        @app_commands.guild_only()
        async def listteams_command(interaction: discord.Interaction) -> None:
            await self._handle_listteams(interaction)

        @self.tree.command(name="streamer", description="Register your streaming handle")
        @app_commands.guild_only()
        @app_commands.describe(handle="Twitch/YouTube handle or channel URL")
        async def streamer_command(interaction: discord.Interaction, handle: str) -> None:
            await self._handle_streamer(interaction, handle)

        @self.tree.command(name="streamers", description="List the league's streamers")
        @app_commands.guild_only()
        async def streamers_command(interaction: discord.Interaction) -> None:
            await self._handle_streamers(interaction)

        # -- Admin commands -------------------------------------------------

        @self.tree.command(name="setup", description="Finish setting up the league")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.describe(
            league_type="new starts at Season 1 Preseason; established imports a position",
            season="Current season (established leagues)",
            phase="Current phase (established leagues)",
            sub_phase="Current sub-phase within the phase (established leagues)",
        )
        @app_commands.choices(
            league_type=[
                app_commands.Choice(name="New league", value="new"),
                app_commands.Choice(name="Established league", value="established"),
            ]
        )
        async def setup_command(
            interaction: discord.Interaction,
            league_type: str = "new",
            season: int | None = None,
            phase: str | None = None,
            sub_phase: app_commands.Range[int, 0, 16] = 0,
        ) -> None:
            start = (season, phase, sub_phase) if season is not None and phase else None
            await self._handle_setup(interaction, league_type, start)

        @self.tree.command(name="advance", description="Advance the league to the next week")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.describe(hours="Hours until the advance deadline")
        async def advance_command(
            interaction: discord.Interaction,
            hours: int | None = None,
        ) -> None:
            await self._handle_advance(interaction, hours)

        @self.tree.command(name="season-advance", description="Start the next season")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        async def season_advance_command(interaction: discord.Interaction) -> None:
            await self._handle_season_advance(interaction)

        @self.tree.command(name="assign-team", description="Assign a team to a coach")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.describe(announce="Announce the signing in the signed-coaches channel")
        async def assign_team_command(
            interaction: discord.Interaction,
            user: discord.Member,
            team: str,
            announce: bool = True,
        ) -> None:
            await self._handle_assign_team(interaction, user, team, announce)

        @assign_team_command.autocomplete("team")
        async def _assign_autocomplete(
            interaction: discord.Interaction,
            current: str,
        ) -> list[app_commands.Choice[str]]:
            return await self._autocomplete_teams(current)

        @self.tree.command(name="resetteam", description="Remove a coach's team assignment")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        async def resetteam_command(interaction: discord.Interaction, user: discord.Member) -> None:
            await self._handle_reset_team(interaction, user)

        @self.tree.command(name="move-coach", description="Move a coach to another team")
        @app_commands.guild_only()
        @app_commands.default_permissions(manage_guild=True)
        async def move_coach_command(
            interaction: discord.Interaction,
            user: discord.Member,
            team: str,
        ) -> None:
            await self._handle_move_coach(interaction, user, team)

        @move_coach_command.autocomplete("team")
        async def _move_autocomplete(
            interaction: discord.Interaction,
            current: str,
        ) -> list[app_commands.Choice[str]]:
            return await self._autocomplete_teams(current)

        config_group = app_commands.Group(
            name="config",
            description="View or change league settings",
            guild_only=True,
            default_permissions=discord.Permissions(manage_guild=True),
        )

        @config_group.command(name="view", description="Show the league configuration")
        async def config_view_command(interaction: discord.Interaction) -> None:
            await self._handle_config_view(interaction)

        @config_group.command(name="edit", description="Change one setting")
        @app_commands.choices(setting=_SETTING_CHOICES[:25])
        async def config_edit_command(
            interaction: discord.Interaction,
            setting: str,
            value: str,
        ) -> None:
            await self._handle_config_edit(interaction, setting, value)

        @config_group.command(name="features", description="Turn a feature on or off")
        @app_commands.choices(feature=_FEATURE_CHOICES)
        async def config_features_command(
            interaction: discord.Interaction,
            feature: str,
            enabled: bool,
        ) -> None:
            await self._handle_config_feature(interaction, feature, enabled)

        @config_group.command(name="reload", description="Reload settings from the database")
        async def config_reload_command(interaction: discord.Interaction) -> None:
            await self._handle_config_reload(interaction)

        self.tree.add_command(config_group)

    async def setup_hook(self) -> None:
        """Called when the bot is ready to start. Syncs slash commands."""
        if self.settings.discord_guild_id:
            guild = discord.Object(id=int(self.settings.discord_guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info("discord_commands_synced guild_id=%s", self.settings.discord_guild_id)
        else:
            await self.tree.sync()
            logger.info("discord_commands_synced globally")

    async def on_ready(self) -> None:
        """Called when the bot has connected to Discord.

        on_ready fires on every reconnect. Guild initialization is
        idempotent and the listener task is only started once.
        """
        user = self.user
        logger.info(
            "discord_bot_ready user=%s guilds=%d",
            user.name if user else "unknown",
            len(self.guilds),
        )
        for guild in self.guilds:
            await self._init_guild(guild)
        if self._event_listener_task is None or self._event_listener_task.done():
            self._event_listener_task = asyncio.create_task(
                self._listen_to_event_bus(), name="discord-event-listener"
            )

    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info("discord_guild_joined guild=%s name=%s", guild.id, guild.name)
        await self._init_guild(guild)

    async def _init_guild(self, guild: discord.Guild) -> None:
        try:
            await init_guild(self.engine, self.configs, str(guild.id), guild.name)
        except SQLAlchemyError:
            logger.exception("discord_guild_init_failed guild=%s", guild.id)

    async def on_message(self, message: discord.Message) -> None:
        """Schedule a stream reminder when a coach posts a stream link."""
        if message.author.bot or message.guild is None:
            return
        channel_name = getattr(message.channel, "name", "")
        guild_id = str(message.guild.id)
        try:
            config = await self.configs.get(guild_id)
        except SQLAlchemyError:
            logger.exception("discord_stream_config_failed guild=%s", guild_id)
            return
        link = stream_link_to_remind(config, channel_name, message.content)
        if link is None:
            return

        channel = message.channel
        mention = message.author.mention

        async def _remind() -> None:
            await channel.send(
                f"{mention} your stream has been going a while. "
                "Don't forget to report your result with `/game-result`!"
            )

        self.stream_reminders.schedule(
            guild_id,
            str(channel.id),
            str(message.author.id),
            config.stream_reminder_minutes * 60,
            _remind,
        )

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        """Route job-offer Accept buttons, including ones sent before a restart."""
        if interaction.type != discord.InteractionType.component:
            return
        custom_id = str((interaction.data or {}).get("custom_id", ""))
        parsed = parse_accept_offer_id(custom_id)
        if parsed is None:
            return
        guild_id, team_id = parsed
        await self._handle_accept_offer(interaction, team_id, guild_id)

    # ------------------------------------------------------------------
    # Event bus delivery
    # ------------------------------------------------------------------

    async def _listen_to_event_bus(self) -> None:
        """Subscribe to EventBus and forward events to Discord."""
        async with self.event_bus.subscribe(None) as subscription:
            async for event in subscription:
                try:
                    await self._dispatch_event(event)
                except Exception:  # Last-resort handler; one bad event must not stop the loop
                    logger.exception("discord_event_dispatch_error event=%s", event.get("type"))

    async def _dispatch_event(self, event: dict[str, Any]) -> None:
        """Route an EventBus event to a guild channel or a coach's DMs."""
        event_type = str(event.get("type", ""))
        data = event.get("data", {})
        if not isinstance(data, dict) or "guild_id" not in data:
            return
        guild_id = str(data["guild_id"])
        config = await self.configs.get(guild_id)

        if event_type == events.OFFERS_EXPIRED:
            embed = build_offers_expired_embed(list(data.get("team_names", [])), config)
            await self._send_dm(str(data["user_id"]), embed)
            return

        if event_type == events.COACH_SIGNED:
            if not data.get("announce", True):
                return
            embed = build_signed_embed(data, config)
            channel = self._channel_for(guild_id, config, "signed_coaches") or self._channel_for(
                guild_id, config, "news_feed"
            )
            await self._send_to_channel(channel, embed, event_type)
            return

        builders = {
            events.LEAGUE_ADVANCED: build_advance_embed,
            events.LEAGUE_WEEK_RECAP: build_week_recap_embed,
            events.LEAGUE_NEW_SEASON: build_new_season_embed,
            events.COACH_MOVED: build_moved_embed,
            events.GAME_RECORDED: build_game_result_embed,
            events.NEWS_PRESS_RELEASE: build_press_release_embed,
        }
        builder = builders.get(event_type)
        if builder is None:
            return
        channel = self._channel_for(guild_id, config, CHANNEL_FOR_EVENT[event_type])
        await self._send_to_channel(channel, builder(data, config), event_type)

    def _channel_for(
        self, guild_id: str, config: GuildConfig, role: str
    ) -> discord.TextChannel | None:
        """Resolve a logical channel role to a text channel in the guild, by name."""
        guild = self.get_guild(int(guild_id))
        if guild is None:
            return None
        return discord.utils.get(guild.text_channels, name=config.channel_for(role))

    async def _send_to_channel(
        self,
        channel: discord.TextChannel | None,
        embed: discord.Embed,
        event_type: str,
    ) -> None:
        if channel is None:
            logger.info("discord_channel_missing event=%s", event_type)
            return
        with contextlib.suppress(discord.Forbidden, discord.HTTPException):
            await channel.send(embed=embed)

    async def _send_dm(self, user_id: str, embed: discord.Embed) -> None:
        try:
            user = self.get_user(int(user_id)) or await self.fetch_user(int(user_id))
            await user.send(embed=embed)
        except (discord.Forbidden, discord.HTTPException) as exc:
            # DMs disabled or unknown user; non-fatal
            logger.info("discord_dm_failed user=%s err=%s", user_id, exc)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _autocomplete_teams(self, current: str) -> list[app_commands.Choice[str]]:
        try:
            async with get_session(self.engine) as session:
                rows = await Repository(session).search_teams(current, limit=25)
                names = [row.team_name for row in rows]
        except SQLAlchemyError:
            logger.exception("discord_team_autocomplete_failed")
            return []
        return [app_commands.Choice(name=name, value=name) for name in names]

    @staticmethod
    async def _reject(interaction: discord.Interaction, rejected: Rejected) -> None:
        await interaction.followup.send(rejected.message, ephemeral=True)

    @staticmethod
    async def _fail(interaction: discord.Interaction, event_key: str) -> None:
        logger.exception("%s guild=%s", event_key, interaction.guild_id)
        with contextlib.suppress(discord.HTTPException):
            await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)

    async def _head_coach_role(
        self, guild: discord.Guild, config: GuildConfig
    ) -> discord.Role | None:
        """Find the head-coach role, caching its id in the guild config."""
        if config.role_head_coach_id:
            role = guild.get_role(int(config.role_head_coach_id))
            if role is not None:
                return role
        role = discord.utils.find(
            lambda r: r.name.lower() == config.role_head_coach.lower(), guild.roles
        )
        if role is not None:
            try:
                await self.configs.save(str(guild.id), {"role_head_coach_id": str(role.id)})
            except SQLAlchemyError:
                logger.exception("discord_role_cache_failed guild=%s", guild.id)
        return role

    async def _set_head_coach_role(
        self, guild: discord.Guild | None, user_id: int, *, grant: bool
    ) -> None:
        """Grant or remove the head-coach role. Never fails the calling command."""
        if guild is None:
            return
        member = guild.get_member(user_id)
        if member is None:
            return
        config = await self.configs.get(str(guild.id))
        role = await self._head_coach_role(guild, config)
        if role is None:
            logger.info("discord_head_coach_role_missing guild=%s", guild.id)
            return
        try:
            if grant:
                await member.add_roles(role, reason="Dynasty team assignment")
            else:
                await member.remove_roles(role, reason="Dynasty team reset")
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.info(
                "discord_role_update_failed guild=%s user=%s err=%s", guild.id, user_id, exc
            )

    # ------------------------------------------------------------------
    # Coach commands
    # ------------------------------------------------------------------

    async def _handle_joboffers(self, interaction: discord.Interaction) -> None:
        """Handle /joboffers: DM the coach their offers with Accept buttons."""
        await interaction.response.defer(ephemeral=True)
        guild_id = str(interaction.guild_id)
        try:
            issued = await request_offers(
                self.engine, self.configs, guild_id, str(interaction.user.id)
            )
            config = await self.configs.get(guild_id)
        except SQLAlchemyError:
            await self._fail(interaction, "discord_joboffers_failed")
            return
        if isinstance(issued, Rejected):
            await self._reject(interaction, issued)
            return

        embed = build_offers_embed(issued, config)
        try:
            await interaction.user.send(embed=embed, view=OfferView(issued))
        except (discord.Forbidden, discord.HTTPException):
            # DMs closed: show the offers here instead
            await interaction.followup.send(embed=embed, view=OfferView(issued), ephemeral=True)
            return
        await interaction.followup.send("Check your DMs for your job offers!", ephemeral=True)

    async def _handle_accept_offer(
        self,
        interaction: discord.Interaction,
        team_id: int,
        guild_id: str | None = None,
    ) -> None:
        """Handle an Accept button press.

        Offer buttons are usually pressed in a DM, so the guild comes from
        the button id. Older buttons without one fall back to the coach's
        live offer rows.
        """
        await interaction.response.defer(ephemeral=True)
        user_id = str(interaction.user.id)
        try:
            if guild_id is None:
                guild_id = await self._offer_guild(user_id, team_id, interaction.guild_id)
            if guild_id is None:
                await interaction.followup.send(
                    "This offer is no longer available.", ephemeral=True
                )
                return
            accepted = await accept_offer(
                self.engine, self.configs, self.event_bus, guild_id, user_id, team_id
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_accept_offer_failed")
            return
        if isinstance(accepted, Rejected):
            await self._reject(interaction, accepted)
            return

        await interaction.followup.send(
            f"Congratulations! You are the new head coach of **{accepted.team.team_name}**.",
            ephemeral=True,
        )
        await self._set_head_coach_role(
            self.get_guild(int(guild_id)), interaction.user.id, grant=True
        )

    async def _offer_guild(self, user_id: str, team_id: int, guild_id: int | None) -> str | None:
        """Guild of the coach's live offer for *team_id*, or None if absent or ambiguous."""
        if guild_id is not None:
            return str(guild_id)
        async with get_session(self.engine) as session:
            rows = await Repository(session).list_offers(
                user_id=user_id, team_id=team_id, active_at=datetime.now(UTC)
            )
        guilds = {row.guild_id for row in rows}
        if len(guilds) > 1:
            logger.warning(
                "discord_accept_offer_ambiguous user=%s team=%s guilds=%s",
                user_id,
                team_id,
                sorted(guilds),
            )
            return None
        return guilds.pop() if guilds else None

    async def _handle_game_result(
        self,
        interaction: discord.Interaction,
        opponent: str,
        your_score: int,
        opponent_score: int,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            recorded = await record_game_result(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                str(interaction.user.id),
                opponent,
                your_score,
                opponent_score,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_game_result_failed")
            return
        if isinstance(recorded, Rejected):
            await self._reject(interaction, recorded)
            return
        result = recorded.result
        await interaction.followup.send(
            f"Recorded: **{result.team1.team_name}** {result.score1} - "
            f"{result.score2} **{result.team2.team_name}**.",
            ephemeral=True,
        )

    async def _handle_any_game_result(
        self,
        interaction: discord.Interaction,
        team1: str,
        team2: str,
        score1: int,
        score2: int,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            recorded = await record_any_game_result(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                str(interaction.user.id),
                team1,
                team2,
                score1,
                score2,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_any_game_result_failed")
            return
        if isinstance(recorded, Rejected):
            await self._reject(interaction, recorded)
            return
        await interaction.followup.send("Result recorded.", ephemeral=True)

    async def _handle_press_release(self, interaction: discord.Interaction, message: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            posted = await post_press_release(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                str(interaction.user.id),
                interaction.user.display_name,
                message,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_press_release_failed")
            return
        if isinstance(posted, Rejected):
            await self._reject(interaction, posted)
            return
        await interaction.followup.send("Press release posted.", ephemeral=True)

    async def _handle_ranking(self, interaction: discord.Interaction, *, all_time: bool) -> None:
        """Handle /ranking and /ranking-all-time."""
        await interaction.response.defer()
        guild_id = str(interaction.guild_id)
        try:
            config = await self.configs.get(guild_id)
            if not config.feature_rankings:
                await interaction.followup.send("Rankings are disabled.", ephemeral=True)
                return
            if all_time:
                standings = await all_time_rankings(self.engine, guild_id)
                title = f"{config.league_name}: All-Time Rankings"
            else:
                meta = await get_meta(self.engine, guild_id)
                standings = await season_standings(self.engine, guild_id, meta.season)
                title = f"{config.league_name}: Season {meta.season} Standings"
        except SQLAlchemyError:
            await self._fail(interaction, "discord_ranking_failed")
            return
        embed = build_standings_embed(standings, config, title, show_pct=all_time)
        await interaction.followup.send(embed=embed)

    async def _handle_listteams(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer()
        guild_id = str(interaction.guild_id)
        try:
            listing = await list_teams(self.engine, guild_id)
            config = await self.configs.get(guild_id)
        except SQLAlchemyError:
            await self._fail(interaction, "discord_listteams_failed")
            return
        await interaction.followup.send(embed=build_team_list_embed(listing, config))

    async def _handle_streamer(self, interaction: discord.Interaction, handle: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            saved = await set_streamer_handle(
                self.engine,
                self.configs,
                str(interaction.guild_id),
                str(interaction.user.id),
                handle,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_streamer_failed")
            return
        if isinstance(saved, Rejected):
            await self._reject(interaction, saved)
            return
        await interaction.followup.send(
            f"Saved your {saved.platform} handle: {saved.handle}", ephemeral=True
        )

    async def _handle_streamers(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer()
        guild_id = str(interaction.guild_id)
        try:
            config = await self.configs.get(guild_id)
            streamers = await list_streamers(self.engine, guild_id)
        except SQLAlchemyError:
            await self._fail(interaction, "discord_streamers_failed")
            return
        await interaction.followup.send(embed=build_streamers_embed(streamers, config))

    # ------------------------------------------------------------------
    # Admin commands
    # ------------------------------------------------------------------

    async def _handle_setup(
        self,
        interaction: discord.Interaction,
        league_type: str,
        start: tuple[int, str, int] | None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        guild = interaction.guild
        updates = {"league_name": guild.name} if guild is not None else {}
        try:
            config = await self.configs.get(str(interaction.guild_id))
            if config.setup_complete:
                # Keep an admin-chosen name on re-runs
                updates = {}
            done = await complete_setup(
                self.engine,
                self.configs,
                str(interaction.guild_id),
                updates,
                league_type=league_type,
                start=start,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_setup_failed")
            return
        if isinstance(done, Rejected):
            await self._reject(interaction, done)
            return
        await interaction.followup.send(
            f"Setup complete! The league is at Season {done.season}, "
            f"{done.phase.value} ({done.sub_phase}).",
            ephemeral=True,
        )

    async def _handle_advance(self, interaction: discord.Interaction, hours: int | None) -> None:
        """Handle /advance, prompting for the Week 15 choice when needed."""
        await interaction.response.defer(ephemeral=True)
        timeout = self.settings.dynasty_week15_prompt_seconds

        async def choose_week15(target: Position) -> bool | None:
            view = Week15ChoiceView(original_user_id=interaction.user.id, timeout=timeout)
            await interaction.followup.send(
                f"Season {target.season} is heading into Week 15. "
                "Play Week 15 or skip to the Conference Championships?",
                view=view,
                ephemeral=True,
            )
            await view.wait()
            return view.choice

        try:
            advanced = await advance_league(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                hours,
                choose_week15=choose_week15,
                prompt_timeout=timeout,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_advance_failed")
            return
        if isinstance(advanced, Rejected):
            await self._reject(interaction, advanced)
            return
        await interaction.followup.send(
            f"Advanced to **Season {advanced.season}, {advanced.label}** "
            f"with a {advanced.hours}h deadline.",
            ephemeral=True,
        )

    async def _handle_season_advance(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            advanced = await advance_season(
                self.engine, self.configs, self.event_bus, str(interaction.guild_id)
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_season_advance_failed")
            return
        if isinstance(advanced, Rejected):
            await self._reject(interaction, advanced)
            return
        await interaction.followup.send(f"Season {advanced.season} has begun.", ephemeral=True)

    async def _handle_assign_team(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        team: str,
        announce: bool,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            assigned = await assign_team(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                str(user.id),
                team,
                announce=announce,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_assign_team_failed")
            return
        if isinstance(assigned, Rejected):
            await self._reject(interaction, assigned)
            return
        await interaction.followup.send(
            f"{user.mention} is now head coach of **{assigned.team.team_name}**.", ephemeral=True
        )
        await self._set_head_coach_role(interaction.guild, user.id, grant=True)

    async def _handle_reset_team(
        self, interaction: discord.Interaction, user: discord.Member
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            reset = await reset_team(self.engine, str(interaction.guild_id), str(user.id))
        except SQLAlchemyError:
            await self._fail(interaction, "discord_reset_team_failed")
            return
        if isinstance(reset, Rejected):
            await self._reject(interaction, reset)
            return
        await interaction.followup.send(
            f"{user.mention} is no longer coaching **{reset.team.team_name}**.", ephemeral=True
        )
        await self._set_head_coach_role(interaction.guild, user.id, grant=False)

    async def _handle_move_coach(
        self,
        interaction: discord.Interaction,
        user: discord.Member,
        team: str,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            moved = await move_coach(
                self.engine,
                self.configs,
                self.event_bus,
                str(interaction.guild_id),
                str(user.id),
                team,
            )
        except SQLAlchemyError:
            await self._fail(interaction, "discord_move_coach_failed")
            return
        if isinstance(moved, Rejected):
            await self._reject(interaction, moved)
            return
        if isinstance(moved, CoachMoved):
            text = (
                f"Moved {user.mention} from **{moved.from_team.team_name}** "
                f"to **{moved.to_team.team_name}**."
            )
        else:
            text = f"{user.mention} had no team and is now coaching **{moved.team.team_name}**."
        await interaction.followup.send(text, ephemeral=True)

    async def _handle_config_view(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            config = await self.configs.get(str(interaction.guild_id))
        except SQLAlchemyError:
            await self._fail(interaction, "discord_config_view_failed")
            return
        await interaction.followup.send(embed=build_config_embed(config), ephemeral=True)

    async def _handle_config_edit(
        self, interaction: discord.Interaction, setting: str, value: str
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            edited = await self.configs.edit_setting(str(interaction.guild_id), setting, value)
        except SQLAlchemyError:
            await self._fail(interaction, "discord_config_edit_failed")
            return
        if isinstance(edited, Rejected):
            await self._reject(interaction, edited)
            return
        await interaction.followup.send(
            f"`{edited.setting}` updated to `{edited.value}`.", ephemeral=True
        )

    async def _handle_config_feature(
        self, interaction: discord.Interaction, feature: str, enabled: bool
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            edited = await self.configs.set_feature(str(interaction.guild_id), feature, enabled)
        except SQLAlchemyError:
            await self._fail(interaction, "discord_config_feature_failed")
            return
        if isinstance(edited, Rejected):
            await self._reject(interaction, edited)
            return
        state = "enabled" if enabled else "disabled"
        name = edited.setting.removeprefix("feature_")
        await interaction.followup.send(f"`{name}` {state}.", ephemeral=True)

    async def _handle_config_reload(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            await self.configs.reload(str(interaction.guild_id))
        except SQLAlchemyError:
            await self._fail(interaction, "discord_config_reload_failed")
            return
        await interaction.followup.send("Configuration reloaded.", ephemeral=True)

    async def close(self) -> None:
        """Clean shutdown: cancel reminders and the event listener, then close."""
        cancelled = self.stream_reminders.cancel_all()
        if cancelled:
            logger.info("discord_stream_reminders_cancelled count=%d", cancelled)
        if self._event_listener_task and not self._event_listener_task.done():
            self._event_listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._event_listener_task
        await super().close()


def is_discord_enabled(settings: Settings) -> bool:
    """Check whether Discord integration should be started.

    Returns True only when discord_enabled is True, a token is set, and the
    environment is not development, so a local server never connects to a
    live league.
    """
    if settings.dynasty_env == "development":
        logger.info("discord_bot_skipped_in_development")
        return False
    return bool(settings.discord_enabled and settings.discord_bot_token)


async def start_discord_bot(
    settings: Settings,
    event_bus: EventBus,
    engine: AsyncEngine,
    configs: ConfigCache,
) -> DynastyBot:
    """Create and start the Discord bot in the current event loop.

    Returns the bot instance so the caller can stop it during shutdown.
    The bot runs as a background task; this function returns immediately
    after starting it.
    """
    bot = DynastyBot(settings=settings, event_bus=event_bus, engine=engine, configs=configs)

    async def _run_bot() -> None:
        try:
            await bot.start(settings.discord_bot_token)
        except asyncio.CancelledError:
            logger.info("discord_bot_cancelled")
        except Exception:  # Last-resort handler; bot.start raises connection and auth errors
            logger.exception("discord_bot_error")
        finally:
            if not bot.is_closed():
                await bot.close()

    bot._runner_task = asyncio.create_task(_run_bot(), name="discord-bot")
    logger.info("discord_bot_started")
    return bot
