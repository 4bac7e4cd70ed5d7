"""Tests for the FastAPI application shell."""

from httpx import ASGITransport, AsyncClient

from dynasty.config import Settings
from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import EventBus
from dynasty.main import create_app, lifespan


class TestHealth:
    async def test_health(self, settings: Settings) -> None:
        app = create_app(settings)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_docs_hidden_in_production(self) -> None:
        settings = Settings(
            dynasty_env="production",
            discord_enabled=False,
            database_url="sqlite+aiosqlite:///:memory:",
        )
        app = create_app(settings)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/docs")
        assert response.status_code == 404


class TestLifespan:
    async def test_startup_wires_services(self, settings: Settings) -> None:
        app = create_app(settings)
        async with lifespan(app):
            assert isinstance(app.state.event_bus, EventBus)
            assert isinstance(app.state.configs, ConfigCache)
            assert app.state.discord_bot is None
            job_ids = {job.id for job in app.state.scheduler.get_jobs()}
            assert job_ids == {"offer_sweep"}

    async def test_self_ping_job_when_configured(self) -> None:
        settings = Settings(
            dynasty_env="development",
            database_url="sqlite+aiosqlite:///:memory:",
            dynasty_self_ping_url="https://dynasty.example/health",
        )
        app = create_app(settings)
        async with lifespan(app):
            job_ids = {job.id for job in app.state.scheduler.get_jobs()}
        assert job_ids == {"offer_sweep", "self_ping"}
