"""Job offers: issue, accept, and expire time-bounded options on teams.

The ledger is advisory. While an unexpired offer for a team exists in a
guild, nobody else in that guild is offered that team, even though only
one user can end up holding it. The assignment table decides who
actually gets a team: ``accept_offer`` claims with a conditional insert,
so when two users race for the same team the second one is told the
team is taken.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from dynasty.core.config_cache import ConfigCache
from dynasty.core.event_bus import COACH_SIGNED, OFFERS_EXPIRED, EventBus
from dynasty.db.engine import get_session
from dynasty.db.models import JobOfferRow, TeamRow
from dynasty.db.repository import Repository
from dynasty.models.league import JobOffer, Team
from dynasty.models.outcomes import (
    OfferAccepted,
    OffersIssued,
    Rejected,
    RejectReason,
    SweepResult,
)

logger = logging.getLogger(__name__)


def _taken(team: Team) -> Rejected:
    return Rejected(RejectReason.ALREADY_TAKEN, f"{team.team_name} has already been taken.")


def _to_offer(row: JobOfferRow, team: TeamRow) -> JobOffer:
    return JobOffer(
        id=row.id,
        guild_id=row.guild_id,
        user_id=row.user_id,
        team=Team.model_validate(team),
        expires_at=row.expires_at,
    )


async def request_offers(
    engine: AsyncEngine,
    configs: ConfigCache,
    guild_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> OffersIssued | Rejected:
    """Give *user_id* a batch of job offers, or re-send the batch they already hold."""
    config = await configs.get(guild_id)
    if not config.feature_job_offers:
        return Rejected(RejectReason.FEATURE_DISABLED, "Job offers are disabled in this league.")
    if not config.setup_complete:
        return Rejected(RejectReason.SETUP_INCOMPLETE, "Run /setup before requesting offers.")

    moment = now or datetime.now(UTC)
    async with get_session(engine) as session:
        repo = Repository(session)
        assignment = await repo.get_assignment_for_user(guild_id, user_id)
        if assignment is not None:
            return Rejected(
                RejectReason.ALREADY_HAS_TEAM,
                f"You already coach {assignment.team.team_name}.",
            )

        held = await repo.list_offers(guild_id=guild_id, user_id=user_id, active_at=moment)
        if held:
            offers = [_to_offer(row, row.team) for row in held]
            logger.info("offers_resent guild=%s user=%s count=%d", guild_id, user_id, len(offers))
            return OffersIssued(
                offers=offers,
                expires_at=min(offer.expires_at for offer in offers),
                existing=True,
            )

        candidates = await repo.list_teams_by_rating(
            config.star_rating_for_offers, config.star_rating_max_for_offers
        )
        taken = {a.team_id for a in await repo.list_assignments(guild_id)}
        locked = {o.team_id for o in await repo.list_offers(guild_id=guild_id, active_at=moment)}
        pool = [team for team in candidates if team.id not in taken and team.id not in locked]
        if not pool:
            logger.info("offers_pool_empty guild=%s user=%s", guild_id, user_id)
            return Rejected(
                RejectReason.NO_ELIGIBLE_TEAMS,
                "No teams are available for offers right now. Try again later.",
            )

        picks = (rng or random).sample(pool, min(config.job_offers_count, len(pool)))
        expires_at = moment + timedelta(hours=config.job_offers_expiry_hours)
        rows = await repo.insert_offers(
            [
                {
                    "guild_id": guild_id,
                    "user_id": user_id,
                    "team_id": team.id,
                    "expires_at": expires_at,
                }
                for team in picks
            ]
        )
        offers = [_to_offer(row, team) for row, team in zip(rows, picks, strict=True)]

    logger.info(
        "offers_issued guild=%s user=%s teams=%s",
        guild_id,
        user_id,
        [offer.team.team_name for offer in offers],
    )
    return OffersIssued(offers=offers, expires_at=expires_at)


async def accept_offer(
    engine: AsyncEngine,
    configs: ConfigCache,
    bus: EventBus,
    guild_id: str,
    user_id: str,
    team_id: int,
    *,
    now: datetime | None = None,
) -> OfferAccepted | Rejected:
    """Sign *user_id* to *team_id* using one of their live offers.

    Success deletes every offer the user holds in the guild. A failed
    accept leaves the ledger as it was.
    """
    config = await configs.get(guild_id)
    if not config.feature_job_offers:
        return Rejected(RejectReason.FEATURE_DISABLED, "Job offers are disabled in this league.")

    moment = now or datetime.now(UTC)
    async with get_session(engine) as session:
        repo = Repository(session)
        offers = await repo.list_offers(
            guild_id=guild_id, user_id=user_id, team_id=team_id, active_at=moment
        )
        if not offers:
            return Rejected(
                RejectReason.OFFER_UNAVAILABLE,
                "This offer is no longer available. Request new offers with /joboffers.",
            )
        team = Team.model_validate(offers[0].team)

        if await repo.get_assignment_for_team(guild_id, team_id) is not None:
            logger.info("offer_accept_lost guild=%s user=%s team=%s", guild_id, user_id, team_id)
            return _taken(team)
        current = await repo.get_assignment_for_user(guild_id, user_id)
        if current is not None:
            return Rejected(
                RejectReason.ALREADY_HAS_TEAM, f"You already coach {current.team.team_name}."
            )

        if not await repo.claim_team(team_id, user_id, guild_id):
            logger.info("offer_accept_lost guild=%s user=%s team=%s", guild_id, user_id, team_id)
            return _taken(team)
        deleted = await repo.delete_offers(guild_id=guild_id, user_id=user_id)
        forfeited = max(deleted - 1, 0)

    logger.info(
        "offer_accepted guild=%s user=%s team=%s forfeited=%d",
        guild_id,
        user_id,
        team.team_name,
        forfeited,
    )
    await bus.publish(
        COACH_SIGNED,
        {
            "guild_id": guild_id,
            "user_id": user_id,
            "team_name": team.team_name,
            "conference": team.conference,
            "star_rating": team.star_rating,
            "source": "offer",
        },
    )
    return OfferAccepted(team=team, forfeited=forfeited)


async def sweep_expired_offers(
    engine: AsyncEngine,
    bus: EventBus,
    *,
    now: datetime | None = None,
) -> SweepResult:
    """Delete every lapsed offer and tell each affected user which teams went back.

    Each row is claimed by its own delete, so overlapping sweeps notify a
    given row at most once. Cleanup commits before any notification goes
    out.
    """
    moment = now or datetime.now(UTC)
    released: dict[tuple[str, str], list[str]] = defaultdict(list)
    async with get_session(engine) as session:
        repo = Repository(session)
        for row in await repo.list_offers(expired_by=moment):
            key, team_name = (row.guild_id, row.user_id), row.team.team_name
            if await repo.delete_offer(row.id):
                released[key].append(team_name)

    expired = sum(len(names) for names in released.values())
    if not expired:
        logger.debug("offer_sweep_idle")
        return SweepResult(expired=0, notified_users=0)

    for (guild_id, user_id), team_names in released.items():
        await bus.publish(
            OFFERS_EXPIRED,
            {"guild_id": guild_id, "user_id": user_id, "team_names": sorted(team_names)},
        )
    logger.info("offer_sweep expired=%d users=%d", expired, len(released))
    return SweepResult(expired=expired, notified_users=len(released))
