"""Entry point for the xiuxian idle cultivation Discord bot."""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import GameConfig
from .session import SessionManager
from .storage import SaveStore

log = logging.getLogger(__name__)


class XiuxianBot(commands.Bot):
    def __init__(self, config: GameConfig):
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.saves = SaveStore()
        self.sessions = SessionManager(self.saves, config)
        self._synced = False

    async def setup_hook(self) -> None:
        await self.load_extension("xiuxian.cogs.cultivation")
        await self.load_extension("xiuxian.cogs.combat")

    async def on_ready(self) -> None:
        if not self._synced:
            await self.tree.sync()
            self._synced = True
            log.info("Application commands synced")
        if self.user:
            log.info("Connected as %s (%s)", self.user, self.user.id)

    async def close(self) -> None:
        await self.sessions.close()
        await super().close()


async def main() -> None:
    config = GameConfig.from_env(require_token=True)
    logging.basicConfig(level=config.log_level)
    bot = XiuxianBot(config)
    async with bot:
        await bot.start(config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
