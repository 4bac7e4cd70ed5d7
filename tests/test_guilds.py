"""Tests for guild initialization and setup completion."""

from dynasty.core.guilds import complete_setup, get_meta, init_guild
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.league import Phase
from dynasty.models.outcomes import GuildInitialized, Rejected, RejectReason, SetupCompleted


class TestInitGuild:
    async def test_creates_config_and_meta(self, engine, configs):
        result = await init_guild(engine, configs, "9", "Saturday Legends")
        assert result == GuildInitialized(guild_id="9", created=True)

        config = await configs.get("9")
        assert config.league_name == "Saturday Legends"
        assert not config.setup_complete
        meta = await get_meta(engine, "9")
        assert (meta.season, meta.current_phase, meta.current_sub_phase) == (
            1,
            Phase.PRESEASON,
            0,
        )

    async def test_idempotent(self, engine, configs):
        await init_guild(engine, configs, "9", "First Name")
        await configs.save("9", {"league_name": "Renamed"})
        again = await init_guild(engine, configs, "9", "First Name")
        assert not again.created
        assert (await configs.get("9")).league_name == "Renamed"

    async def test_evicts_cached_defaults(self, engine, configs):
        # A read before the row exists caches the defaults.
        assert (await configs.get("9")).league_name == "Dynasty League"
        await init_guild(engine, configs, "9", "Saturday Legends")
        assert (await configs.get("9")).league_name == "Saturday Legends"


class TestCompleteSetup:
    async def test_new_league(self, engine, configs):
        await init_guild(engine, configs, "9", "League")
        result = await complete_setup(engine, configs, "9", {"league_abbreviation": "SL"})
        assert result == SetupCompleted(
            guild_id="9", league_type="new", season=1, phase=Phase.PRESEASON, sub_phase=0
        )
        config = await configs.get("9")
        assert config.setup_complete
        assert config.league_abbreviation == "SL"

    async def test_established_league_imports_position(self, engine, configs):
        await init_guild(engine, configs, "9", "League")
        result = await complete_setup(
            engine,
            configs,
            "9",
            {},
            league_type="established",
            start=(4, "transfer_portal", 2),
        )
        assert isinstance(result, SetupCompleted)
        meta = await get_meta(engine, "9")
        assert (meta.season, meta.current_phase, meta.current_sub_phase) == (
            4,
            Phase.TRANSFER_PORTAL,
            2,
        )
        assert meta.week == 17
        assert (await configs.get("9")).league_type == "established"

    async def test_established_requires_position(self, engine, configs):
        result = await complete_setup(engine, configs, "9", {}, league_type="established")
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_POSITION
        assert not (await configs.get("9")).setup_complete

    async def test_established_rejects_bad_slot(self, engine, configs):
        result = await complete_setup(
            engine, configs, "9", {}, league_type="established", start=(2, "transfer_portal", 0)
        )
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_POSITION

    async def test_established_rejects_unknown_phase(self, engine, configs):
        result = await complete_setup(
            engine, configs, "9", {}, league_type="established", start=(2, "spring_ball", 0)
        )
        assert isinstance(result, Rejected)

    async def test_unknown_league_type(self, engine, configs):
        result = await complete_setup(engine, configs, "9", {}, league_type="ancient")
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_SETTING

    async def test_rerun_keeps_position(self, engine, configs):
        await init_guild(engine, configs, "9", "League")
        await complete_setup(engine, configs, "9", {})
        async with get_session(engine) as session:
            await Repository(session).upsert_meta(
                "9", season=3, current_phase=Phase.BOWL.value, current_sub_phase=1
            )

        result = await complete_setup(
            engine,
            configs,
            "9",
            {"league_name": "New Name"},
            league_type="established",
            start=(1, "preseason", 0),
        )
        assert isinstance(result, SetupCompleted)
        assert (result.season, result.phase, result.sub_phase) == (3, Phase.BOWL, 1)
        assert (await configs.get("9")).league_name == "New Name"
