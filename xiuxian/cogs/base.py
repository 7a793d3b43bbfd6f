"""Shared helpers for cogs."""

from __future__ import annotations

import logging

import discord
from discord.ext import commands

from ..game import Action
from ..models.state import GameState
from ..session import PlayerSession, SessionManager

log = logging.getLogger(__name__)


class XiuxianCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def sessions(self) -> SessionManager:
        return self.bot.sessions  # type: ignore[attr-defined, return-value]

    async def session_for(self, interaction: discord.Interaction) -> PlayerSession:
        return await self.sessions.get(
            str(interaction.user.id), name=interaction.user.display_name
        )

    async def dispatch(
        self, interaction: discord.Interaction, action: Action
    ) -> tuple[PlayerSession, GameState, bool]:
        """Dispatch ``action`` for the invoking user; the flag is ``True`` if state changed."""

        session = await self.session_for(interaction)
        previous = session.state
        updated = session.store.dispatch(action)
        return session, updated, updated is not previous

    async def reply(
        self,
        interaction: discord.Interaction,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
        ephemeral: bool = True,
    ) -> None:
        kwargs = {"content": content, "ephemeral": ephemeral}
        if embed is not None:
            kwargs["embed"] = embed
        if view is not None:
            kwargs["view"] = view
        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)


__all__ = ["XiuxianCog"]
