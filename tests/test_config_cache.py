"""Tests for the guild config cache and admin /config edits."""

from dynasty.core import config_cache
from dynasty.core.config_cache import ConfigCache
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.outcomes import ConfigEdited, Rejected, RejectReason


async def _write_behind_cache(engine, guild_id: str, **fields) -> None:
    async with get_session(engine) as session:
        await Repository(session).upsert_guild_config(guild_id, fields)


class TestGet:
    async def test_missing_guild_gets_defaults(self, configs: ConfigCache):
        config = await configs.get("5")
        assert config.guild_id == "5"
        assert config.job_offers_count == 3
        assert "5" in configs

    async def test_cached_until_invalidated(self, engine, configs: ConfigCache):
        await configs.save("5", {"league_name": "Before"})
        assert (await configs.get("5")).league_name == "Before"

        await _write_behind_cache(engine, "5", league_name="After")
        assert (await configs.get("5")).league_name == "Before"

        configs.invalidate("5")
        assert (await configs.get("5")).league_name == "After"

    async def test_invalidate_all(self, configs: ConfigCache):
        await configs.get("5")
        await configs.get("6")
        configs.invalidate()
        assert "5" not in configs
        assert "6" not in configs

    async def test_reload(self, engine, configs: ConfigCache):
        await configs.get("5")
        await _write_behind_cache(engine, "5", job_offers_count=7)
        assert (await configs.reload("5")).job_offers_count == 7

    async def test_malformed_row_falls_back(self, engine, configs: ConfigCache, caplog):
        await _write_behind_cache(engine, "5", advance_intervals="whenever")
        config = await configs.get("5")
        assert config.advance_intervals == [24, 48]
        assert "config_parse_fallback" in caplog.text

    async def test_load_overlapping_write_is_not_cached(self, configs: ConfigCache, monkeypatch):
        real_parse = config_cache.parse_guild_config

        def parse_during_write(guild_id, row):
            configs.invalidate(guild_id)
            return real_parse(guild_id, row)

        monkeypatch.setattr(config_cache, "parse_guild_config", parse_during_write)
        config = await configs.get("5")
        assert config.guild_id == "5"
        assert "5" not in configs


class TestSave:
    async def test_save_evicts(self, configs: ConfigCache):
        await configs.get("5")
        await configs.save("5", {"league_abbreviation": "SL"})
        assert "5" not in configs
        assert (await configs.get("5")).league_abbreviation == "SL"


class TestEditSetting:
    async def test_edit(self, configs: ConfigCache):
        result = await configs.edit_setting("5", "job_offers_count", "4")
        assert result == ConfigEdited(setting="job_offers_count", value=4)
        assert (await configs.get("5")).job_offers_count == 4

    async def test_edit_intervals(self, configs: ConfigCache):
        await configs.edit_setting("5", "advance_intervals", "12, 36")
        assert (await configs.get("5")).advance_intervals == [12, 36]

    async def test_unknown_setting(self, configs: ConfigCache):
        result = await configs.edit_setting("5", "setup_complete", "yes")
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_SETTING

    async def test_bad_value_leaves_config(self, configs: ConfigCache):
        result = await configs.edit_setting("5", "embed_color_primary", "mauve")
        assert isinstance(result, Rejected)
        assert (await configs.get("5")).color_primary == 0x1E90FF

    async def test_oversized_hours_rejected(self, configs: ConfigCache):
        intervals = await configs.edit_setting("5", "advance_intervals", "[100000000]")
        expiry = await configs.edit_setting("5", "job_offers_expiry_hours", "100000000")
        assert isinstance(intervals, Rejected)
        assert isinstance(expiry, Rejected)
        config = await configs.get("5")
        assert config.advance_intervals == [24, 48]
        assert config.job_offers_expiry_hours == 48

    async def test_oversized_value_stored_elsewhere_falls_back(self, engine, configs):
        await _write_behind_cache(engine, "5", job_offers_expiry_hours=100000000)
        assert (await configs.get("5")).job_offers_expiry_hours == 48


class TestSetFeature:
    async def test_toggle(self, configs: ConfigCache):
        result = await configs.set_feature("5", "job_offers", False)
        assert result == ConfigEdited(setting="feature_job_offers", value=False)
        assert not (await configs.get("5")).feature_job_offers

    async def test_full_name(self, configs: ConfigCache):
        await configs.set_feature("5", "feature_rankings", False)
        assert not (await configs.get("5")).feature_rankings

    async def test_unknown_feature(self, configs: ConfigCache):
        result = await configs.set_feature("5", "time_travel", True)
        assert isinstance(result, Rejected)
