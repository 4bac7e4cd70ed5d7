"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.config import Settings
from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import EventBus
from dynasty.core.guilds import complete_setup, init_guild
from dynasty.db.engine import create_engine, create_tables, get_session
from dynasty.db.repository import Repository

GUILD = "1001"

# (name, star rating, conference)
TEAMS = [
    ("Alabama", 5.0, "SEC"),
    ("Georgia", 4.5, "SEC"),
    ("Ohio State", 4.5, "Big Ten"),
    ("Oregon", 4.0, "Big Ten"),
    ("Utah", 3.5, "Big 12"),
    ("Tulane", 2.5, "American"),
    ("Liberty", 2.0, "Conference USA"),
    ("Akron", 1.0, "MAC"),
]


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(dynasty_env="development", database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def configs(engine: AsyncEngine) -> ConfigCache:
    return ConfigCache(engine)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
async def teams(engine: AsyncEngine) -> dict[str, int]:
    """Seed the global roster. Returns team name -> id."""
    ids: dict[str, int] = {}
    async with get_session(engine) as session:
        repo = Repository(session)
        for name, rating, conference in TEAMS:
            row = await repo.create_team(name, star_rating=rating, conference=conference)
            ids[name] = row.id
    return ids


@pytest.fixture
async def league(engine: AsyncEngine, configs: ConfigCache, teams: dict[str, int]) -> str:
    """A guild that has joined and finished setup as a new league."""
    await init_guild(engine, configs, GUILD, "Test Dynasty")
    await complete_setup(engine, configs, GUILD, {})
    return GUILD

