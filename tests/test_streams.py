"""Tests for stream link detection, delayed reminders, and streamer handles."""

import asyncio

import pytest

from dynasty.core.streams import (
    StreamReminders,
    find_stream_link,
    list_streamers,
    set_streamer_handle,
    stream_link_to_remind,
)
from dynasty.models.guild_config import GuildConfig
from dynasty.models.outcomes import Rejected, RejectReason, StreamerSaved


class TestFindStreamLink:
    @pytest.mark.parametrize(
        ("content", "link"),
        [
            ("live now https://twitch.tv/coachone go", "https://twitch.tv/coachone"),
            ("https://www.youtube.com/watch?v=abc123", "https://www.youtube.com/watch?v=abc123"),
            ("HTTPS://YOUTU.BE/xyz", "HTTPS://YOUTU.BE/xyz"),
        ],
    )
    def test_finds_link(self, content, link):
        assert find_stream_link(content) == link

    @pytest.mark.parametrize(
        "content", ["no link here", "https://example.com/twitch.tv", "twitch.tv/coachone"]
    )
    def test_ignores_other_text(self, content):
        assert find_stream_link(content) is None


class TestStreamLinkToRemind:
    def test_streaming_channel(self):
        config = GuildConfig(guild_id="1")
        link = stream_link_to_remind(config, "Streaming", "https://twitch.tv/a")
        assert link == "https://twitch.tv/a"

    def test_other_channel(self):
        config = GuildConfig(guild_id="1")
        assert stream_link_to_remind(config, "general", "https://twitch.tv/a") is None

    def test_feature_disabled(self):
        config = GuildConfig(guild_id="1", feature_stream_reminders=False)
        assert stream_link_to_remind(config, "streaming", "https://twitch.tv/a") is None


class TestStreamReminders:
    async def test_fires_once_then_clears(self):
        reminders = StreamReminders()
        sent = asyncio.Event()

        async def send():
            sent.set()

        assert reminders.schedule("g", "c", "u", 0.01, send)
        assert reminders.is_pending("g", "c", "u")
        await asyncio.wait_for(sent.wait(), timeout=1.0)
        await asyncio.sleep(0)
        assert not reminders.is_pending("g", "c", "u")

    async def test_duplicate_ignored_while_pending(self):
        reminders = StreamReminders()
        calls = []

        async def send():
            calls.append(1)

        assert reminders.schedule("g", "c", "u", 10, send)
        assert not reminders.schedule("g", "c", "u", 10, send)
        assert reminders.schedule("g", "c", "other", 10, send)
        assert reminders.schedule("g", "other", "u", 10, send)
        assert len(reminders) == 3
        assert reminders.cancel_all() == 3
        assert len(reminders) == 0
        assert calls == []

    async def test_failed_send_is_logged(self, caplog):
        reminders = StreamReminders()

        async def send():
            raise RuntimeError("channel gone")

        reminders.schedule("g", "c", "u", 0, send)
        for _ in range(5):
            await asyncio.sleep(0)
        assert not reminders.is_pending("g", "c", "u")
        assert "stream_reminder_failed" in caplog.text

    async def test_can_reschedule_after_firing(self):
        reminders = StreamReminders()

        async def send():
            return None

        reminders.schedule("g", "c", "u", 0, send)
        for _ in range(5):
            await asyncio.sleep(0)
        assert reminders.schedule("g", "c", "u", 10, send)
        reminders.cancel_all()


class TestStreamerHandles:
    async def test_save_handle(self, engine, configs):
        result = await set_streamer_handle(engine, configs, "g", "u1", "@CoachOne")
        assert result == StreamerSaved(user_id="u1", handle="CoachOne", platform="twitch")

    async def test_save_youtube_url(self, engine, configs):
        result = await set_streamer_handle(
            engine, configs, "g", "u1", "https://youtube.com/@coachone"
        )
        assert isinstance(result, StreamerSaved)
        assert result.platform == "youtube"

    async def test_replace_and_list(self, engine, configs):
        await set_streamer_handle(engine, configs, "g", "u1", "first")
        await set_streamer_handle(engine, configs, "g", "u1", "second")
        await set_streamer_handle(engine, configs, "g", "u2", "third")
        assert [s.handle for s in await list_streamers(engine, "g")] == ["second", "third"]

    async def test_invalid_handle(self, engine, configs):
        result = await set_streamer_handle(engine, configs, "g", "u1", "not a handle!")
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.INVALID_SETTING

    async def test_feature_disabled(self, engine, configs):
        await configs.set_feature("g", "streaming_list", False)
        result = await set_streamer_handle(engine, configs, "g", "u1", "coach")
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.FEATURE_DISABLED
