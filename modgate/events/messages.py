"""
ModGate - Message Events
========================

Routes guild messages into the moderation engine.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from modgate.core.config import get_config
from modgate.core.logger import logger
from modgate.services.discord_platform import build_inbound_message

if TYPE_CHECKING:
    from modgate.bot import ModGateBot


class MessageEvents(commands.Cog):
    """Message event handlers."""

    def __init__(self, bot: "ModGateBot") -> None:
        self.bot = bot
        self.config = get_config()

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """
        Moderate every message in the configured guild.

        Bots and DMs are skipped here; permission-restricted channels are
        skipped by the engine.
        """
        if message.guild is None or message.guild.id != self.config.guild_id:
            return
        if message.author.bot:
            return

        engine = self.bot.engine
        if engine is None:
            return

        inbound = build_inbound_message(message, self.config)
        if inbound is None:
            return

        try:
            await engine.process_message(inbound)
        except Exception as e:
            logger.error("Message Moderation Failed", [
                ("Message", str(message.id)),
                ("Author", f"{message.author} ({message.author.id})"),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:200]),
            ])


async def setup(bot: "ModGateBot") -> None:
    """Add the message events cog to the bot."""
    await bot.add_cog(MessageEvents(bot))
    logger.debug("Message Events Loaded")
