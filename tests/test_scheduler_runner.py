"""Tests for the scheduled offer sweep and self-ping jobs."""

from datetime import UTC, datetime, timedelta

import httpx
from sqlalchemy.exc import OperationalError

from dynasty.core import scheduler_runner
from dynasty.core.event_bus import OFFERS_EXPIRED
from dynasty.core.scheduler_runner import run_offer_sweep, self_ping
from dynasty.db.engine import get_session
from dynasty.db.repository import Repository
from dynasty.models.outcomes import SweepResult


class TestRunOfferSweep:
    async def test_releases_lapsed_offers(self, engine, bus, teams):
        async with get_session(engine) as session:
            await Repository(session).insert_offers(
                [
                    {
                        "guild_id": "g",
                        "user_id": "u1",
                        "team_id": teams["Akron"],
                        "expires_at": datetime.now(UTC) - timedelta(minutes=5),
                    }
                ]
            )

        async with bus.subscribe(OFFERS_EXPIRED) as sub:
            result = await run_offer_sweep(engine, bus)
            event = await sub.get(timeout=1.0)

        assert result == SweepResult(expired=1, notified_users=1)
        assert event["data"]["team_names"] == ["Akron"]

    async def test_nothing_to_do(self, engine, bus):
        assert await run_offer_sweep(engine, bus) == SweepResult(expired=0, notified_users=0)

    async def test_database_error_is_logged(self, engine, bus, monkeypatch, caplog):
        async def broken_sweep(engine, bus):
            raise OperationalError("DELETE", {}, Exception("database is locked"))

        monkeypatch.setattr(scheduler_runner, "sweep_expired_offers", broken_sweep)
        assert await run_offer_sweep(engine, bus) is None
        assert "offer_sweep_failed" in caplog.text


class TestSelfPing:
    async def test_returns_status(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"status": "ok"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            status = await self_ping("https://dynasty.example/health", client)

        assert status == 200
        assert seen == ["https://dynasty.example/health"]

    async def test_connection_error(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await self_ping("https://dynasty.example/health", client) is None
        assert "self_ping_failed" in caplog.text
