"""Guild-keyed configuration cache.

One ``ConfigCache`` is built by the application at startup and handed to
the bot and the scheduler; tests build their own. Reads populate lazily
from the store. Writes go to the store and then evict the guild's entry,
so the next read reloads the whole row. The cached object is never
patched in place.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.guild_config import (
    EDITABLE_SETTINGS,
    FEATURE_FLAGS,
    GuildConfig,
    coerce_setting,
    parse_guild_config,
)
from dynasty.models.outcomes import ConfigEdited, Rejected, RejectReason

logger = logging.getLogger(__name__)


class ConfigCache:
    """Process-wide map of guild id to parsed ``GuildConfig``."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._entries: dict[str, GuildConfig] = {}
        # Bumped on every write; a load that overlapped a write is not cached.
        self._generation: dict[str, int] = defaultdict(int)
        self._epoch = 0

    def __contains__(self, guild_id: str) -> bool:
        return guild_id in self._entries

    async def get(self, guild_id: str) -> GuildConfig:
        """Return the guild's configuration, loading it on a miss."""
        cached = self._entries.get(guild_id)
        if cached is not None:
            return cached

        generation = (self._epoch, self._generation[guild_id])
        async with get_session(self._engine) as session:
            row = await Repository(session).get_guild_config(guild_id)
            parsed = parse_guild_config(guild_id, row)

        for warning in parsed.warnings:
            logger.warning(
                "config_parse_fallback guild=%s field=%s raw=%r reason=%s",
                guild_id,
                warning.field,
                warning.raw,
                warning.reason,
            )
        if (self._epoch, self._generation[guild_id]) == generation:
            self._entries[guild_id] = parsed.config
        return parsed.config

    async def save(self, guild_id: str, fields: dict[str, Any]) -> None:
        """Write *fields* to the guild's row, then evict the cached entry."""
        try:
            async with get_session(self._engine) as session:
                await Repository(session).upsert_guild_config(guild_id, fields)
        finally:
            self.invalidate(guild_id)
        logger.info("config_saved guild=%s fields=%s", guild_id, sorted(fields))

    def invalidate(self, guild_id: str | None = None) -> None:
        """Evict one guild, or every guild when *guild_id* is None."""
        if guild_id is None:
            self._epoch += 1
            self._entries.clear()
            return
        self._generation[guild_id] += 1
        self._entries.pop(guild_id, None)

    async def reload(self, guild_id: str) -> GuildConfig:
        self.invalidate(guild_id)
        return await self.get(guild_id)

    async def edit_setting(
        self, guild_id: str, setting: str, value: str
    ) -> ConfigEdited | Rejected:
        """Apply an admin ``/config edit``. Unknown settings and bad values are rejected."""
        if setting not in EDITABLE_SETTINGS:
            return Rejected(
                RejectReason.INVALID_SETTING, f"`{setting}` is not an editable setting."
            )
        try:
            stored = coerce_setting(setting, value)
        except ValueError as exc:
            return Rejected(RejectReason.INVALID_SETTING, f"Invalid value for `{setting}`: {exc}")

        await self.save(guild_id, {setting: stored})
        return ConfigEdited(setting=setting, value=stored)

    async def set_feature(
        self, guild_id: str, feature: str, enabled: bool
    ) -> ConfigEdited | Rejected:
        name = feature if feature.startswith("feature_") else f"feature_{feature}"
        if name not in FEATURE_FLAGS:
            return Rejected(RejectReason.INVALID_SETTING, f"`{feature}` is not a feature.")
        await self.save(guild_id, {name: enabled})
        return ConfigEdited(setting=name, value=enabled)
