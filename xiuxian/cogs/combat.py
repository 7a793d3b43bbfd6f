from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .. import combat as combat_engine
from ..catalog import get_catalog
from ..game import (
    Action,
    CollectRewards,
    EndCombat,
    PlayerAttack,
    PlayerDefend,
    PlayerFlee,
    PlayerObserve,
    PlayerUseItem,
    StartCombat,
)
from ..models.combat import SkillType
from ..narration import render_log
from ..session import PlayerSession
from ..views import CombatActionView, build_combat_embed, describe_skills
from .base import XiuxianCog

log = logging.getLogger(__name__)


class CombatCog(XiuxianCog):
    def _action_view(self, interaction: discord.Interaction) -> CombatActionView | None:
        session = self.sessions.active(str(interaction.user.id))
        if session is None or not combat_engine.can_act(session.state.combat):
            return None
        return CombatActionView(
            interaction.user.id,
            attack=lambda i: self._act(i, PlayerAttack(self._basic_skill(session))),
            defend=lambda i: self._act(i, PlayerDefend()),
            observe=lambda i: self._act(i, PlayerObserve()),
            flee=lambda i: self._act(i, PlayerFlee()),
        )

    @staticmethod
    def _basic_skill(session: PlayerSession) -> str:
        unit = session.state.combat.player_unit
        skills = get_catalog().skills
        if unit is not None:
            for skill_id in unit.skills:
                if skills[skill_id].type is SkillType.BASIC:
                    return skill_id
        return "basic_attack"

    async def _show(self, interaction: discord.Interaction, session: PlayerSession) -> None:
        combat = session.state.combat
        embed = build_combat_embed(combat)
        if combat_engine.can_act(combat) and combat.player_unit is not None:
            embed.add_field(
                name="Skills", value="\n".join(describe_skills(combat.player_unit)), inline=False
            )
        view = self._action_view(interaction)
        await self.reply(interaction, embed=embed, view=view)

    async def _act(self, interaction: discord.Interaction, action: Action) -> None:
        session = await self.session_for(interaction)
        if not session.state.combat.in_combat:
            await self.reply(interaction, "You are not in a battle. Use `/fight` to start one.")
            return
        session.resolve_enemy_turns()
        if not combat_engine.can_act(session.state.combat):
            await self._show(interaction, session)
            return
        previous = session.state
        if session.store.dispatch(action) is previous:
            await self.reply(interaction, "You cannot do that right now.")
            return
        session.resolve_enemy_turns()
        await self._show(interaction, session)

    @app_commands.command(name="fight", description="Challenge an enemy of your realm")
    @app_commands.describe(enemy_id="Specific enemy to fight (random when omitted)")
    async def fight(self, interaction: discord.Interaction, enemy_id: str | None = None) -> None:
        session = await self.session_for(interaction)
        if session.state.combat.in_combat:
            session.resolve_enemy_turns()
            await self._show(interaction, session)
            return
        if enemy_id is None:
            template = combat_engine.get_random_enemy(session.state.character.realm)
            if template is None:
                await self.reply(interaction, "No enemies roam at your realm.")
                return
            enemy_id = template.id
        previous = session.state
        updated = session.store.dispatch(StartCombat(enemy_id))
        if updated is previous:
            await self.reply(interaction, "No such enemy is known.")
            return
        session.resolve_enemy_turns()
        await self._show(interaction, session)

    @app_commands.command(name="attack", description="Use a combat skill")
    @app_commands.describe(skill_id="Skill to use (basic attack when omitted)")
    async def attack(self, interaction: discord.Interaction, skill_id: str | None = None) -> None:
        session = await self.session_for(interaction)
        await self._act(interaction, PlayerAttack(skill_id or self._basic_skill(session)))

    @app_commands.command(name="defend", description="Halve the damage of the next attack")
    async def defend(self, interaction: discord.Interaction) -> None:
        await self._act(interaction, PlayerDefend())

    @app_commands.command(name="observe", description="Study your opponent to gain insight")
    async def observe(self, interaction: discord.Interaction) -> None:
        await self._act(interaction, PlayerObserve())

    @app_commands.command(name="flee", description="Try to escape the battle")
    async def flee(self, interaction: discord.Interaction) -> None:
        await self._act(interaction, PlayerFlee())

    @app_commands.command(name="use", description="Use a consumable in battle")
    @app_commands.describe(item_id="Key of the item to use")
    async def use(self, interaction: discord.Interaction, item_id: str) -> None:
        await self._act(interaction, PlayerUseItem(item_id))

    @app_commands.command(name="collect", description="Gather the spoils of a victory")
    async def collect(self, interaction: discord.Interaction) -> None:
        _, state, changed = await self.dispatch(interaction, CollectRewards())
        if not changed:
            await self.reply(interaction, "There are no spoils to collect.")
            return
        lines = [
            render_log(entry)
            for entry in state.logs[-2:]
            if entry.key in ("combat.rewards", "skill_points.awarded")
        ]
        await self.reply(interaction, "\n".join(lines) or "You leave the battlefield.")

    @app_commands.command(name="leave", description="Leave a finished battle")
    async def leave(self, interaction: discord.Interaction) -> None:
        _, state, changed = await self.dispatch(interaction, EndCombat())
        if not changed:
            await self.reply(interaction, "There is no finished battle to leave.")
            return
        await self.reply(interaction, render_log(state.logs[-1]))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(CombatCog(bot))
