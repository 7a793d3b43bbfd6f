"""Embeds and interactive controls for the Discord front end."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable, SupportsInt

import discord

from .catalog import get_catalog
from .clock import format_time_detailed
from .combat import can_use_skill
from .market import get_price_change_percent, get_price_trend, PriceTrend
from .models.combat import CombatPhase, CombatState, CombatUnit
from .models.state import GameState
from .narration import render_combat_log, render_log
from .skills import RESET_REFUND_RATE, learn_block, tree_progress

SimpleCallback = Callable[[discord.Interaction], Awaitable[None]]

RECENT_LOG_LINES = 5
RECENT_COMBAT_LINES = 8

_TREND_MARKERS = {PriceTrend.UP: "▲", PriceTrend.DOWN: "▼", PriceTrend.STABLE: "•"}


def format_number(value: SupportsInt) -> str:
    """Return ``value`` with ``'`` as the thousands separator."""

    integer = int(value)
    sign = "-" if integer < 0 else ""
    formatted = f"{abs(integer):,}".replace(",", "'")
    return f"{sign}{formatted}"


def _bar(current: int, maximum: int, width: int = 10) -> str:
    if maximum <= 0:
        return "░" * width
    filled = max(0, min(width, round(width * current / maximum)))
    return "█" * filled + "░" * (width - filled)


def build_status_embed(state: GameState) -> discord.Embed:
    catalog = get_catalog()
    character = state.character
    realm = catalog.realm(character.realm)
    activity = catalog.activity(character.current_activity)
    embed = discord.Embed(
        title=character.name,
        description=realm.display_name(character.realm_stage),
        colour=discord.Colour.from_str("#8e44ad"),
    )
    embed.add_field(
        name="Cultivation",
        value=(
            f"{_bar(character.cultivation_value, character.cultivation_max)} "
            f"{format_number(character.cultivation_value)}/{format_number(character.cultivation_max)}"
        ),
        inline=False,
    )
    stats = character.stats
    embed.add_field(name="HP", value=f"{stats.hp}/{stats.max_hp}", inline=True)
    embed.add_field(
        name="Spiritual Power",
        value=f"{stats.spiritual_power}/{stats.max_spiritual_power}",
        inline=True,
    )
    embed.add_field(name="Spirit Stones", value=format_number(character.spirit_stones), inline=True)
    embed.add_field(name="Activity", value=activity.name, inline=True)
    embed.add_field(
        name="Wudao Points", value=format_number(character.skill_points.wudao_points), inline=True
    )
    status = "Paused" if state.is_paused else f"x{state.game_speed:g}"
    embed.add_field(name="Speed", value=status, inline=True)
    if character.breakthrough.is_ready:
        embed.add_field(
            name="Breakthrough",
            value="Your cultivation is full. Use `/breakthrough`.",
            inline=False,
        )
    recent = [render_log(entry) for entry in state.logs[-RECENT_LOG_LINES:]]
    if recent:
        embed.add_field(name="Recent Events", value="\n".join(recent), inline=False)
    embed.set_footer(text=format_time_detailed(state.time))
    return embed


def build_inventory_lines(state: GameState) -> list[str]:
    items = get_catalog().items
    lines = []
    for entry in state.character.inventory:
        definition = items.get(entry.item_id)
        name = definition.name if definition else entry.item_id
        lines.append(f"{name} x{entry.quantity} (`{entry.item_id}`)")
    return lines


def build_market_embed(state: GameState) -> discord.Embed:
    items = get_catalog().items
    embed = discord.Embed(
        title="Spirit Market",
        colour=discord.Colour.from_str("#2ecc71"),
    )
    lines = []
    for item in state.market.items:
        definition = items.get(item.item_id)
        name = definition.name if definition else item.item_id
        change = get_price_change_percent(item)
        marker = _TREND_MARKERS[get_price_trend(item)]
        lines.append(
            f"{marker} **{name}** `{item.item_id}`: {item.current_price:.2f} "
            f"({change:+.1f}%), stock {item.liquidity}/{item.max_liquidity}"
        )
    embed.description = "\n".join(lines) or "The market is empty."
    if state.market.active_events:
        embed.add_field(
            name="Events",
            value="\n".join(
                f"{event.name} ({event.remaining_duration} days left)"
                for event in state.market.active_events
            ),
            inline=False,
        )
    embed.add_field(
        name="Your Purse", value=format_number(state.character.spirit_stones), inline=True
    )
    embed.set_footer(text="Selling returns 90% of the listed price.")
    return embed


def build_skill_tree_embed(state: GameState) -> discord.Embed:
    catalog = get_catalog()
    character = state.character
    embed = discord.Embed(
        title="Wudao Skill Tree",
        description=f"Wudao points: {character.skill_points.wudao_points}",
        colour=discord.Colour.from_str("#9b59b6"),
    )
    learned = set(character.skill_points.learned)
    for tree, label in catalog.skill_trees.items():
        done, total = tree_progress(character, tree, catalog)
        lines = []
        for node in catalog.skill_nodes.values():
            if node.tree != tree:
                continue
            if node.id in learned:
                marker = "✓"
            elif learn_block(character, node.id, catalog) is None:
                marker = "○"
            else:
                marker = "·"
            lines.append(f"{marker} **{node.name}** `{node.id}` ({node.cost}): {node.description}")
        embed.add_field(name=f"{label} ({done}/{total})", value="\n".join(lines) or "-", inline=False)
    embed.set_footer(
        text=f"✓ learned, ○ available. Resetting a tree refunds {RESET_REFUND_RATE:.0%} of its points."
    )
    return embed


def _unit_line(unit: CombatUnit | None) -> str:
    if unit is None:
        return "-"
    stats = unit.stats
    parts = [f"HP {_bar(stats.hp, stats.max_hp)} {stats.hp}/{stats.max_hp}", f"MP {stats.mp}/{stats.max_mp}"]
    if unit.shield:
        parts.append(f"Shield {unit.shield}")
    if unit.insight_stacks:
        parts.append(f"Insight {unit.insight_stacks}")
    if unit.buffs:
        buffs = get_catalog().buffs
        parts.append(
            ", ".join(
                f"{buffs[active.buff_id].name if active.buff_id in buffs else active.buff_id}"
                f" ({active.remaining_duration})"
                for active in unit.buffs
            )
        )
    return "\n".join(parts)


def build_combat_embed(combat: CombatState) -> discord.Embed:
    colour = discord.Colour.red()
    if combat.phase is CombatPhase.VICTORY:
        colour = discord.Colour.gold()
    elif combat.phase in (CombatPhase.DEFEAT, CombatPhase.FLED):
        colour = discord.Colour.dark_grey()
    embed = discord.Embed(
        title=f"Round {combat.round}",
        description=combat.phase.value.replace("_", " ").title(),
        colour=colour,
    )
    player, enemy = combat.player_unit, combat.enemy_unit
    embed.add_field(name=player.name if player else "You", value=_unit_line(player), inline=True)
    embed.add_field(name=enemy.name if enemy else "Enemy", value=_unit_line(enemy), inline=True)
    recent = [render_combat_log(entry) for entry in combat.combat_log[-RECENT_COMBAT_LINES:]]
    if recent:
        embed.add_field(name="Battle Log", value="\n".join(recent), inline=False)
    if combat.phase is CombatPhase.VICTORY:
        embed.set_footer(text="Use /collect to gather your spoils.")
    elif combat.phase.is_terminal:
        embed.set_footer(text="Use /leave to return to your cultivation.")
    return embed


def describe_skills(unit: CombatUnit) -> Iterable[str]:
    skills = get_catalog().skills
    for skill_id in unit.skills:
        skill = skills[skill_id]
        ready = "ready" if can_use_skill(unit, skill_id) else f"cooldown {unit.cooldown_of(skill_id)}"
        yield f"`{skill_id}` {skill.name}: {skill.cost_mp} MP, {ready}"


class OwnedView(discord.ui.View):
    """Base view that restricts interactions to a single Discord user."""

    def __init__(self, owner_id: int | None, *, timeout: float = 120.0) -> None:
        super().__init__(timeout=timeout)
        self.owner_id = owner_id

    async def interaction_check(self, interaction: discord.Interaction) -> bool:  # type: ignore[override]
        if self.owner_id is None or interaction.user.id == self.owner_id:
            return True
        await interaction.response.send_message(
            "Only the cultivator who summoned these controls may use them.",
            ephemeral=True,
        )
        return False


class CallbackButton(discord.ui.Button[OwnedView]):
    """Reusable button that forwards interactions to a coroutine callback."""

    def __init__(
        self,
        *,
        label: str | None,
        callback: SimpleCallback,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        emoji: str | None = None,
    ) -> None:
        super().__init__(label=label, style=style, emoji=emoji)
        self._callback = callback

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self._callback(interaction)


class CombatActionView(OwnedView):
    """Attack, defend, observe and flee buttons for the player's turn."""

    def __init__(
        self,
        owner_id: int,
        *,
        attack: SimpleCallback,
        defend: SimpleCallback,
        observe: SimpleCallback,
        flee: SimpleCallback,
    ) -> None:
        super().__init__(owner_id)
        self.add_item(CallbackButton(label="Attack", callback=attack, style=discord.ButtonStyle.danger))
        self.add_item(CallbackButton(label="Defend", callback=defend))
        self.add_item(CallbackButton(label="Observe", callback=observe))
        self.add_item(CallbackButton(label="Flee", callback=flee))


__all__ = [
    "CallbackButton",
    "CombatActionView",
    "OwnedView",
    "build_combat_embed",
    "build_inventory_lines",
    "build_market_embed",
    "build_skill_tree_embed",
    "build_status_embed",
    "describe_skills",
    "format_number",
]
