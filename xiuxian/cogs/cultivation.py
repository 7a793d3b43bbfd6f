from __future__ import annotations

import math

import discord
from discord import app_commands
from discord.ext import commands

from ..catalog import get_catalog
from ..game import (
    AttemptBreakthrough,
    BuyItem,
    ChangeActivity,
    LearnSkillNode,
    ResetGame,
    ResetSkillTree,
    SellItem,
    SetGameSpeed,
    TogglePause,
)
from ..models.progression import ActivityType
from ..narration import render_log
from ..skills import LearnBlock, learn_block
from ..views import (
    build_inventory_lines,
    build_market_embed,
    build_skill_tree_embed,
    build_status_embed,
)
from .base import XiuxianCog

ACTIVITY_CHOICES = [
    app_commands.Choice(name="Closed-door cultivation", value=ActivityType.CLOSED_DOOR.value),
    app_commands.Choice(name="Market station", value=ActivityType.MARKET_STATION.value),
    app_commands.Choice(name="Travel", value=ActivityType.TRAVEL.value),
    app_commands.Choice(name="Rest", value=ActivityType.IDLE.value),
]

TREE_CHOICES = [
    app_commands.Choice(name=label, value=tree) for tree, label in get_catalog().skill_trees.items()
]

LEARN_BLOCK_MESSAGES = {
    LearnBlock.UNKNOWN_NODE: "There is no such node. Use /skills to see the tree.",
    LearnBlock.ALREADY_LEARNED: "You have already comprehended that insight.",
    LearnBlock.REALM_TOO_LOW: "Your realm is too low to grasp that insight.",
    LearnBlock.NOT_ENOUGH_POINTS: "You do not have enough wudao points.",
    LearnBlock.MISSING_PREREQUISITE: "You must first learn the nodes that lead to it.",
    LearnBlock.EXCLUSIVE_CONFLICT: "That path conflicts with an insight you already hold.",
}


class CultivationCog(XiuxianCog):
    @app_commands.command(name="status", description="Show your cultivator")
    async def status(self, interaction: discord.Interaction) -> None:
        session = await self.session_for(interaction)
        embed = build_status_embed(session.state)
        inventory = build_inventory_lines(session.state)
        if inventory:
            embed.add_field(name="Inventory", value="\n".join(inventory), inline=False)
        await self.reply(interaction, embed=embed)

    @app_commands.command(name="activity", description="Choose how to spend your days")
    @app_commands.describe(activity="What your cultivator should focus on")
    @app_commands.choices(activity=ACTIVITY_CHOICES)
    async def activity(
        self, interaction: discord.Interaction, activity: app_commands.Choice[str]
    ) -> None:
        _, state, changed = await self.dispatch(interaction, ChangeActivity(activity.value))
        if not changed:
            await self.reply(interaction, f"You are already focused on {activity.name.lower()}.")
            return
        await self.reply(interaction, render_log(state.logs[-1]))

    @app_commands.command(name="breakthrough", description="Attempt to break through to the next stage")
    async def breakthrough(self, interaction: discord.Interaction) -> None:
        _, state, changed = await self.dispatch(interaction, AttemptBreakthrough())
        if not changed:
            await self.reply(interaction, "You cannot attempt a breakthrough in the middle of a battle.")
            return
        await self.reply(interaction, render_log(state.logs[-1]), ephemeral=False)

    @app_commands.command(name="market", description="View today's market prices")
    async def market(self, interaction: discord.Interaction) -> None:
        session = await self.session_for(interaction)
        await self.reply(interaction, embed=build_market_embed(session.state))

    @app_commands.command(name="buy", description="Buy goods at the market")
    @app_commands.describe(item_id="Key of the item to buy", quantity="How many to buy")
    async def buy(
        self,
        interaction: discord.Interaction,
        item_id: str,
        quantity: app_commands.Range[int, 1, 999] = 1,
    ) -> None:
        session = await self.session_for(interaction)
        state = session.state
        if not get_catalog().activity(state.character.current_activity).can_trade:
            await self.reply(interaction, "You must be at a market station or travelling to trade.")
            return
        listing = state.market.find(item_id)
        if listing is None:
            await self.reply(interaction, "That item is not traded here.")
            return
        updated = session.store.dispatch(BuyItem(item_id, quantity))
        if updated is state:
            if listing.liquidity <= 0:
                message = "The market has no stock of that item left."
            elif math.ceil(listing.current_price) > state.character.spirit_stones:
                message = "You cannot afford that purchase."
            else:
                message = "You cannot complete that purchase. Check your purse and inventory space."
            await self.reply(interaction, message)
            return
        await self.reply(interaction, render_log(updated.logs[-1]))

    @app_commands.command(name="sell", description="Sell goods at the market")
    @app_commands.describe(item_id="Key of the item to sell", quantity="How many to sell")
    async def sell(
        self,
        interaction: discord.Interaction,
        item_id: str,
        quantity: app_commands.Range[int, 1, 999] = 1,
    ) -> None:
        _, state, changed = await self.dispatch(interaction, SellItem(item_id, quantity))
        if not changed:
            await self.reply(
                interaction,
                "You cannot sell that here. Check your activity, the item key and how many you hold.",
            )
            return
        await self.reply(interaction, render_log(state.logs[-1]))

    @app_commands.command(name="skills", description="Show your wudao skill tree")
    async def skills(self, interaction: discord.Interaction) -> None:
        session = await self.session_for(interaction)
        await self.reply(interaction, embed=build_skill_tree_embed(session.state))

    @app_commands.command(name="learn", description="Spend wudao points on a skill tree node")
    @app_commands.describe(node_id="Key of the node to learn")
    async def learn(self, interaction: discord.Interaction, node_id: str) -> None:
        session = await self.session_for(interaction)
        state = session.state
        if state.combat.in_combat:
            await self.reply(interaction, "You cannot meditate on insights in the middle of a battle.")
            return
        blocked = learn_block(state.character, node_id)
        if blocked is not None:
            await self.reply(interaction, LEARN_BLOCK_MESSAGES[blocked])
            return
        updated = session.store.dispatch(LearnSkillNode(node_id))
        await self.reply(interaction, render_log(updated.logs[-1]))

    @app_commands.command(name="unlearn", description="Reset one skill tree for a partial refund")
    @app_commands.describe(tree="Which tree to reset")
    @app_commands.choices(tree=TREE_CHOICES)
    async def unlearn(
        self, interaction: discord.Interaction, tree: app_commands.Choice[str]
    ) -> None:
        _, state, changed = await self.dispatch(interaction, ResetSkillTree(tree.value))
        if not changed:
            await self.reply(interaction, f"There is nothing to reset in the {tree.name}.")
            return
        await self.reply(interaction, render_log(state.logs[-1]))

    @app_commands.command(name="pause", description="Pause or resume the passage of time")
    async def pause(self, interaction: discord.Interaction) -> None:
        _, state, _ = await self.dispatch(interaction, TogglePause())
        await self.reply(interaction, "Time stands still." if state.is_paused else "Time flows again.")

    @app_commands.command(name="speed", description="Change how fast time passes")
    @app_commands.describe(speed="Multiplier applied to the tick rate")
    async def speed(self, interaction: discord.Interaction, speed: float) -> None:
        if not math.isfinite(speed) or speed <= 0:
            await self.reply(interaction, "The speed must be a positive number.")
            return
        _, state, _ = await self.dispatch(interaction, SetGameSpeed(speed))
        await self.reply(interaction, f"Time now flows at x{state.game_speed:g}.")

    @app_commands.command(name="save", description="Save your progress")
    async def save(self, interaction: discord.Interaction) -> None:
        session = await self.session_for(interaction)
        try:
            await self.sessions.save(session)
        except OSError:
            await self.reply(interaction, "Your progress could not be saved. Try again later.")
            raise
        await self.reply(interaction, "Progress saved.")

    @app_commands.command(name="load", description="Restore your last save")
    async def load(self, interaction: discord.Interaction) -> None:
        session = await self.session_for(interaction)
        restored = await self.sessions.reload(session)
        if not restored:
            await self.reply(interaction, "No usable save was found. Your current game is unchanged.")
            return
        await self.reply(interaction, embed=build_status_embed(session.state))

    @app_commands.command(name="reset", description="Abandon your cultivator and start over")
    async def reset(self, interaction: discord.Interaction) -> None:
        _, state, _ = await self.dispatch(interaction, ResetGame(interaction.user.display_name))
        await self.reply(interaction, embed=build_status_embed(state))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(CultivationCog(bot))
