"""Stream links, delayed stream reminders, and streamer handles.

When a coach posts a YouTube or Twitch link in the guild's streaming
channel, one reminder is scheduled per (guild, channel, user). Further
links from the same coach in the same channel are ignored until that
reminder fires.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.guild_config import GuildConfig
from dynasty.models.outcomes import Rejected, RejectReason, StreamerSaved

logger = logging.getLogger(__name__)

STREAM_LINK_RE = re.compile(
    r"https?://(?:www\.)?(?:youtube\.com|youtu\.be|twitch\.tv)/\S*", re.IGNORECASE
)
_HANDLE_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]{1,49}$")


def find_stream_link(text: str) -> str | None:
    """Return the first YouTube/Twitch URL in *text*, if any."""
    match = STREAM_LINK_RE.search(text)
    return match.group(0) if match else None


def stream_link_to_remind(config: GuildConfig, channel_name: str, content: str) -> str | None:
    """The link a message should trigger a reminder for, or None."""
    if not config.feature_stream_reminders:
        return None
    if channel_name.lower() != config.channel_streaming.lower():
        return None
    return find_stream_link(content)


ReminderKey = tuple[str, str, str]


class StreamReminders:
    """Pending reminder tasks keyed by (guild, channel, user)."""

    def __init__(self) -> None:
        self._tasks: dict[ReminderKey, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def is_pending(self, guild_id: str, channel_id: str, user_id: str) -> bool:
        return (guild_id, channel_id, user_id) in self._tasks

    def schedule(
        self,
        guild_id: str,
        channel_id: str,
        user_id: str,
        delay_seconds: float,
        send: Callable[[], Awaitable[object]],
    ) -> bool:
        """Schedule *send* after *delay_seconds*. False if one is already pending."""
        key = (guild_id, channel_id, user_id)
        if key in self._tasks:
            return False
        self._tasks[key] = asyncio.create_task(self._fire(key, delay_seconds, send))
        logger.info(
            "stream_reminder_scheduled guild=%s channel=%s user=%s delay=%.0fs",
            guild_id,
            channel_id,
            user_id,
            delay_seconds,
        )
        return True

    async def _fire(
        self, key: ReminderKey, delay_seconds: float, send: Callable[[], Awaitable[object]]
    ) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            await send()
        except asyncio.CancelledError:
            raise
        except Exception:  # best-effort delivery
            logger.exception("stream_reminder_failed guild=%s channel=%s user=%s", *key)
        finally:
            self._tasks.pop(key, None)

    def cancel_all(self) -> int:
        count = len(self._tasks)
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        return count


def _platform_for(handle: str) -> str:
    lowered = handle.lower()
    if "youtube.com" in lowered or "youtu.be" in lowered:
        return "youtube"
    return "twitch"


def _normalize_handle(raw: str) -> str | None:
    text = raw.strip()
    if STREAM_LINK_RE.fullmatch(text):
        return text
    text = text.lstrip("@")
    return text if _HANDLE_RE.match(text) else None


async def set_streamer_handle(
    engine: AsyncEngine,
    configs: ConfigCache,
    guild_id: str,
    user_id: str,
    handle: str,
) -> StreamerSaved | Rejected:
    """Save a coach's streaming handle or channel URL."""
    config = await configs.get(guild_id)
    if not config.feature_streaming_list:
        return Rejected(RejectReason.FEATURE_DISABLED, "The streaming list is disabled.")
    normalized = _normalize_handle(handle)
    if normalized is None:
        return Rejected(RejectReason.INVALID_SETTING, f"`{handle}` is not a valid handle or URL.")

    platform = _platform_for(normalized)
    async with get_session(engine) as session:
        await Repository(session).upsert_streamer(guild_id, user_id, normalized, platform)
    logger.info("streamer_saved guild=%s user=%s platform=%s", guild_id, user_id, platform)
    return StreamerSaved(user_id=user_id, handle=normalized, platform=platform)


async def list_streamers(engine: AsyncEngine, guild_id: str) -> list[StreamerSaved]:
    async with get_session(engine) as session:
        rows = await Repository(session).list_streamers(guild_id)
        return [
            StreamerSaved(user_id=r.user_id, handle=r.handle, platform=r.platform) for r in rows
        ]
