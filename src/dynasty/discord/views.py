"""Discord UI views for league interactions.

OfferView: one Accept button per job offer, sent by DM. Buttons carry an
``accept-offer_<guild_id>_<team_id>`` custom id so they keep working after
a restart and name their league even when pressed outside it; the bot
routes them from ``on_interaction``.
Week15ChoiceView: Continue/Skip prompt shown to the admin advancing into
Week 15.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

if TYPE_CHECKING:
    from dynasty.models.outcomes import OffersIssued

logger = logging.getLogger(__name__)

ACCEPT_OFFER_PREFIX = "accept-offer_"
# Discord allows five buttons per action row and five rows per message.
MAX_OFFER_BUTTONS = 25


def accept_offer_id(guild_id: str, team_id: int) -> str:
    return f"{ACCEPT_OFFER_PREFIX}{guild_id}_{team_id}"


def parse_accept_offer_id(custom_id: str) -> tuple[str | None, int] | None:
    """Extract (guild id, team id) from an accept-offer button id, or None.

    Buttons sent before guild ids were embedded carry only the team id;
    those parse with a guild of None.
    """
    if not custom_id.startswith(ACCEPT_OFFER_PREFIX):
        return None
    guild_part, _, team_part = custom_id.removeprefix(ACCEPT_OFFER_PREFIX).rpartition("_")
    if not team_part.isdigit() or (guild_part and not guild_part.isdigit()):
        return None
    return guild_part or None, int(team_part)


class OfferView(discord.ui.View):
    """Accept buttons for a batch of job offers.

    The view has no timeout: offers expire in the ledger, and a stale
    button is answered with "no longer available".
    """

    def __init__(self, issued: OffersIssued) -> None:
        super().__init__(timeout=None)
        for offer in issued.offers[:MAX_OFFER_BUTTONS]:
            self.add_item(
                discord.ui.Button(
                    label=f"Accept {offer.team.team_name}"[:80],
                    style=discord.ButtonStyle.green,
                    custom_id=accept_offer_id(offer.guild_id, offer.team.id),
                )
            )


class Week15ChoiceView(discord.ui.View):
    """Continue to Week 15 or skip straight to conference championships.

    ``choice`` stays None if the prompt times out or is dismissed.
    """

    def __init__(self, *, original_user_id: int, timeout: float = 60) -> None:
        super().__init__(timeout=timeout)
        self.original_user_id = original_user_id
        self.choice: bool | None = None

    async def _check_user(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.original_user_id:
            await interaction.response.send_message(
                "Only the admin who ran /advance can choose.",
                ephemeral=True,
            )
            return False
        return True

    def _disable_all(self) -> None:
        for item in self.children:
            if isinstance(item, discord.ui.Button):
                item.disabled = True

    async def _decide(self, interaction: discord.Interaction, choice: bool, text: str) -> None:
        if not await self._check_user(interaction):
            return
        self.choice = choice
        self._disable_all()
        await interaction.response.edit_message(content=text, view=self)
        self.stop()

    @discord.ui.button(label="Continue to Week 15", style=discord.ButtonStyle.green)
    async def play_week15(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        await self._decide(interaction, True, "Advancing to Week 15.")

    @discord.ui.button(label="Skip to Conference Championships", style=discord.ButtonStyle.blurple)
    async def skip_to_conf_champ(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        await self._decide(interaction, False, "Skipping to Conference Championships.")

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.grey)
    async def cancel(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        if not await self._check_user(interaction):
            return
        self._disable_all()
        await interaction.response.edit_message(content="Advance cancelled.", view=self)
        self.stop()

    async def on_timeout(self) -> None:
        self._disable_all()
        logger.info("week15_prompt_timeout user=%s", self.original_user_id)
