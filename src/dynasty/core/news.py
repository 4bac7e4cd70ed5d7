"""Press releases posted to a guild's news feed."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import NEWS_PRESS_RELEASE, EventBus
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.outcomes import PressReleasePosted, Rejected, RejectReason

logger = logging.getLogger(__name__)

MAX_PRESS_RELEASE_LENGTH = 4000


async def post_press_release(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    user_id: str,
    display_name: str,
    message: str,
) -> PressReleasePosted | Rejected:
    """Store a press release under the author's team, or their name if they have none."""
    config = await configs.get(guild_id)
    if not config.feature_press_releases:
        return Rejected(RejectReason.FEATURE_DISABLED, "Press releases are disabled.")
    text = message.strip()
    if not text:
        return Rejected(RejectReason.EMPTY_MESSAGE, "A press release needs a message.")
    text = text[:MAX_PRESS_RELEASE_LENGTH]

    async with get_session(engine) as session:
        repo = Repository(session)
        assignment = await repo.get_assignment_for_user(guild_id, user_id)
        team_name = assignment.team.team_name if assignment is not None else display_name
        item = await repo.add_news_item(guild_id, user_id, team_name, text)
        item_id = item.id

    logger.info("press_release guild=%s user=%s team=%s", guild_id, user_id, team_name)
    await bus.publish(
        NEWS_PRESS_RELEASE,
        {
            "guild_id": guild_id,
            "user_id": user_id,
            "author": display_name,
            "team_name": team_name,
            "message": text,
        },
    )
    return PressReleasePosted(item_id=item_id, team_name=team_name, message=text)
