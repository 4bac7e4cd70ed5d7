"""Tests for the job-offer protocol: request, accept, and expiry sweep."""

import asyncio
import random
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.event_bus import COACH_SIGNED, OFFERS_EXPIRED
from dynasty.core.guilds import init_guild
from dynasty.core.offers import accept_offer, request_offers, sweep_expired_offers
from dynasty.db.engine import create_engine, create_tables, get_session
from dynasty.db.repository import Repository
from dynasty.models.outcomes import (
    OfferAccepted,
    OffersIssued,
    Rejected,
    RejectReason,
    SweepResult,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
ELIGIBLE = {"Alabama", "Georgia", "Ohio State", "Oregon", "Utah", "Tulane"}


async def _assign(engine: AsyncEngine, guild_id: str, team_id: int, user_id: str) -> None:
    async with get_session(engine) as session:
        await Repository(session).upsert_assignment(team_id, user_id, guild_id)


async def _ledger(engine: AsyncEngine, **filters) -> list[tuple[str, str, int]]:
    async with get_session(engine) as session:
        rows = await Repository(session).list_offers(**filters)
        return [(r.guild_id, r.user_id, r.team_id) for r in rows]


async def _issue(engine, configs, guild_id, user_id, *, now=NOW, seed=0) -> OffersIssued:
    issued = await request_offers(
        engine, configs, guild_id, user_id, now=now, rng=random.Random(seed)
    )
    assert isinstance(issued, OffersIssued)
    return issued


class TestRequestOffers:
    async def test_issues_configured_count(self, engine, configs, league):
        issued = await _issue(engine, configs, league, "u1")
        assert len(issued.offers) == 3
        assert not issued.existing
        assert issued.expires_at == NOW + timedelta(hours=48)
        assert {t.team_name for t in issued.teams} <= ELIGIBLE
        assert len(await _ledger(engine, guild_id=league, user_id="u1")) == 3

    async def test_respects_rating_window(self, engine, configs, league):
        await configs.save(
            league, {"star_rating_for_offers": 4.0, "star_rating_max_for_offers": 4.5}
        )
        issued = await _issue(engine, configs, league, "u1")
        assert {t.team_name for t in issued.teams} == {"Georgia", "Ohio State", "Oregon"}

    async def test_rerequest_returns_same_batch(self, engine, configs, league):
        first = await _issue(engine, configs, league, "u1")
        again = await _issue(engine, configs, league, "u1", now=NOW + timedelta(hours=1), seed=7)
        assert again.existing
        assert {t.id for t in again.teams} == {t.id for t in first.teams}
        assert again.expires_at == first.expires_at
        assert len(await _ledger(engine, guild_id=league, user_id="u1")) == 3

    async def test_offered_teams_locked_for_other_users(self, engine, configs, league):
        first = await _issue(engine, configs, league, "u1")
        second = await _issue(engine, configs, league, "u2", seed=1)
        assert not {t.id for t in first.teams} & {t.id for t in second.teams}

    async def test_pool_exhaustion(self, engine, configs, league):
        await _issue(engine, configs, league, "u1")
        await _issue(engine, configs, league, "u2", seed=1)
        result = await request_offers(engine, configs, league, "u3", now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.NO_ELIGIBLE_TEAMS

    async def test_partial_batch_when_pool_small(self, engine, configs, league):
        await configs.save(league, {"star_rating_for_offers": 4.5, "job_offers_count": 5})
        issued = await _issue(engine, configs, league, "u1")
        assert len(issued.offers) == 3
        result = await request_offers(engine, configs, league, "u2", now=NOW)
        assert isinstance(result, Rejected)

    async def test_assigned_teams_excluded(self, engine, configs, league, teams):
        await configs.save(league, {"star_rating_for_offers": 4.5})
        await _assign(engine, league, teams["Alabama"], "coach")
        issued = await _issue(engine, configs, league, "u1")
        assert {t.team_name for t in issued.teams} == {"Georgia", "Ohio State"}

    async def test_user_with_team_rejected(self, engine, configs, league, teams):
        await _assign(engine, league, teams["Utah"], "u1")
        result = await request_offers(engine, configs, league, "u1", now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.ALREADY_HAS_TEAM
        assert await _ledger(engine, guild_id=league) == []

    async def test_feature_disabled(self, engine, configs, league):
        await configs.set_feature(league, "job_offers", False)
        result = await request_offers(engine, configs, league, "u1", now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.FEATURE_DISABLED

    async def test_setup_incomplete(self, engine, configs, teams):
        await init_guild(engine, configs, "3003", "Fresh")
        result = await request_offers(engine, configs, "3003", "u1", now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.SETUP_INCOMPLETE

    async def test_guilds_do_not_share_locks(self, engine, configs, league):
        await init_guild(engine, configs, "2002", "Other")
        await configs.save("2002", {"setup_complete": True})
        await configs.save(league, {"star_rating_for_offers": 4.5})
        await configs.save("2002", {"star_rating_for_offers": 4.5})
        first = await _issue(engine, configs, league, "u1")
        other = await _issue(engine, configs, "2002", "u1")
        assert {t.id for t in first.teams} == {t.id for t in other.teams}

    async def test_expired_offers_release_lock(self, engine, configs, league):
        await configs.save(league, {"star_rating_for_offers": 4.5})
        first = await _issue(engine, configs, league, "u1")
        later = NOW + timedelta(hours=49)
        second = await _issue(engine, configs, league, "u2", now=later)
        assert {t.id for t in second.teams} == {t.id for t in first.teams}

    async def test_oversized_expiry_uses_default(self, engine, configs, league):
        await configs.save(league, {"job_offers_expiry_hours": 100000000})
        issued = await _issue(engine, configs, league, "u1")
        assert issued.expires_at == NOW + timedelta(hours=48)


class TestAcceptOffer:
    async def test_accept_assigns_and_forfeits_rest(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        chosen = issued.teams[0]

        async with bus.subscribe(COACH_SIGNED) as sub:
            result = await accept_offer(engine, configs, bus, league, "u1", chosen.id, now=NOW)
            event = await sub.get(timeout=1.0)

        assert result == OfferAccepted(team=chosen, forfeited=2)
        assert await _ledger(engine, guild_id=league, user_id="u1") == []
        async with get_session(engine) as session:
            holder = await Repository(session).get_assignment_for_team(league, chosen.id)
            assert holder is not None
            assert holder.user_id == "u1"
        assert event["data"]["team_name"] == chosen.team_name
        assert event["data"]["source"] == "offer"

    async def test_forfeited_teams_return_to_pool(self, engine, configs, bus, league):
        await configs.save(league, {"star_rating_for_offers": 4.5})
        issued = await _issue(engine, configs, league, "u1")
        chosen = issued.teams[0]
        await accept_offer(engine, configs, bus, league, "u1", chosen.id, now=NOW)

        other = await _issue(engine, configs, league, "u2")
        assert {t.id for t in other.teams} == {t.id for t in issued.teams} - {chosen.id}

    async def test_team_not_in_users_offers(self, engine, configs, bus, league, teams):
        issued = await _issue(engine, configs, league, "u1")
        outside = next(tid for tid in teams.values() if tid not in {t.id for t in issued.teams})
        result = await accept_offer(engine, configs, bus, league, "u1", outside, now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.OFFER_UNAVAILABLE
        assert len(await _ledger(engine, guild_id=league, user_id="u1")) == 3

    async def test_expired_offer_cannot_be_accepted(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        expiry = issued.expires_at
        result = await accept_offer(
            engine, configs, bus, league, "u1", issued.teams[0].id, now=expiry
        )
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.OFFER_UNAVAILABLE

    async def test_team_taken_in_the_meantime(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        chosen = issued.teams[0]
        await _assign(engine, league, chosen.id, "admin-pick")

        result = await accept_offer(engine, configs, bus, league, "u1", chosen.id, now=NOW)
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.ALREADY_TAKEN
        # A failed accept keeps the user's remaining options.
        assert len(await _ledger(engine, guild_id=league, user_id="u1")) == 3

    async def test_user_assigned_since_request(self, engine, configs, bus, league, teams):
        issued = await _issue(engine, configs, league, "u1")
        await _assign(engine, league, teams["Akron"], "u1")
        result = await accept_offer(
            engine, configs, bus, league, "u1", issued.teams[0].id, now=NOW
        )
        assert isinstance(result, Rejected)
        assert result.reason == RejectReason.ALREADY_HAS_TEAM

    async def test_second_accept_is_rejected(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        first = await accept_offer(engine, configs, bus, league, "u1", issued.teams[0].id, now=NOW)
        assert isinstance(first, OfferAccepted)
        second = await accept_offer(
            engine, configs, bus, league, "u1", issued.teams[1].id, now=NOW
        )
        assert isinstance(second, Rejected)
        assert second.reason == RejectReason.OFFER_UNAVAILABLE

    async def test_two_users_racing_for_one_team(self, engine, configs, bus, league, teams):
        """Both hold a (stale) offer on the same team; only one can sign."""
        target = teams["Alabama"]
        async with get_session(engine) as session:
            await Repository(session).insert_offers(
                [
                    {
                        "guild_id": league,
                        "user_id": user,
                        "team_id": target,
                        "expires_at": NOW + timedelta(hours=1),
                    }
                    for user in ("u1", "u2")
                ]
            )

        first = await accept_offer(engine, configs, bus, league, "u1", target, now=NOW)
        second = await accept_offer(engine, configs, bus, league, "u2", target, now=NOW)
        assert isinstance(first, OfferAccepted)
        assert isinstance(second, Rejected)
        assert second.reason == RejectReason.ALREADY_TAKEN
        async with get_session(engine) as session:
            assignments = await Repository(session).list_assignments(league)
            assert [(a.team_id, a.user_id) for a in assignments] == [(target, "u1")]


class TestSweep:
    async def test_sweep_removes_expired_and_notifies(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        await _issue(engine, configs, league, "u2", now=NOW + timedelta(hours=10), seed=3)

        async with bus.subscribe(OFFERS_EXPIRED) as sub:
            result = await sweep_expired_offers(engine, bus, now=issued.expires_at)
            events = sub.drain()

        assert result == SweepResult(expired=3, notified_users=1)
        assert await _ledger(engine, guild_id=league, user_id="u1") == []
        assert len(await _ledger(engine, guild_id=league, user_id="u2")) == 3
        assert len(events) == 1
        data = events[0]["data"]
        assert data["user_id"] == "u1"
        assert data["guild_id"] == league
        assert data["team_names"] == sorted(t.team_name for t in issued.teams)

    async def test_sweep_idle(self, engine, bus, league):
        result = await sweep_expired_offers(engine, bus, now=NOW)
        assert result == SweepResult(expired=0, notified_users=0)

    async def test_second_sweep_notifies_nobody(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        later = issued.expires_at + timedelta(minutes=1)
        await sweep_expired_offers(engine, bus, now=later)

        async with bus.subscribe(OFFERS_EXPIRED) as sub:
            again = await sweep_expired_offers(engine, bus, now=later)
            assert sub.drain() == []
        assert again.expired == 0

    async def test_sweep_cleans_without_subscribers(self, engine, configs, bus, league):
        issued = await _issue(engine, configs, league, "u1")
        result = await sweep_expired_offers(engine, bus, now=issued.expires_at)
        assert result.expired == 3
        assert await _ledger(engine) == []

    async def test_sweep_groups_per_guild_user(self, engine, configs, bus, league):
        await init_guild(engine, configs, "2002", "Other")
        await configs.save("2002", {"setup_complete": True})
        await _issue(engine, configs, league, "u1")
        await _issue(engine, configs, "2002", "u1")

        async with bus.subscribe(OFFERS_EXPIRED) as sub:
            result = await sweep_expired_offers(engine, bus, now=NOW + timedelta(hours=48))
            events = sub.drain()

        assert result == SweepResult(expired=6, notified_users=2)
        assert sorted(e["data"]["guild_id"] for e in events) == sorted([league, "2002"])


class TestOverlappingSweeps:
    async def test_concurrent_sweeps_notify_once(self, tmp_path, bus):
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'league.db'}")
        await create_tables(engine)
        names = ["Boise State", "Memphis", "Navy"]
        try:
            async with get_session(engine) as session:
                repo = Repository(session)
                rows = [
                    await repo.create_team(name, star_rating=3.0, conference="Independent")
                    for name in names
                ]
                await repo.insert_offers(
                    [
                        {
                            "guild_id": "1001",
                            "user_id": "u1",
                            "team_id": row.id,
                            "expires_at": NOW,
                        }
                        for row in rows
                    ]
                )

            async with bus.subscribe(OFFERS_EXPIRED) as sub:
                results = await asyncio.gather(
                    sweep_expired_offers(engine, bus, now=NOW + timedelta(minutes=1)),
                    sweep_expired_offers(engine, bus, now=NOW + timedelta(minutes=1)),
                )
                events = sub.drain()
            remaining = await _ledger(engine)
        finally:
            await engine.dispose()

        assert sum(result.expired for result in results) == 3
        assert sum(result.notified_users for result in results) == 1
        assert len(events) == 1
        assert events[0]["data"]["team_names"] == sorted(names)
        assert remaining == []
