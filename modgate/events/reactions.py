"""
ModGate - Reaction Events
=========================

Reactions on a Robot Check prompt confirm the held message.

DESIGN:
    Uses the raw event so prompts posted before a restart (or not in the
    message cache) still work. Any emoji counts as confirmation; the
    engine decides whether the reactor is allowed to confirm.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from modgate.core.config import get_config
from modgate.core.logger import logger

if TYPE_CHECKING:
    from modgate.bot import ModGateBot


class ReactionEvents(commands.Cog):
    """Reaction event handlers."""

    def __init__(self, bot: "ModGateBot") -> None:
        self.bot = bot
        self.config = get_config()

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id != self.config.guild_id:
            return
        if self.bot.user is not None and payload.user_id == self.bot.user.id:
            return
        if payload.member is not None and payload.member.bot:
            return

        engine = self.bot.engine
        if engine is None:
            return

        role_ids = None
        if payload.member is not None:
            role_ids = frozenset(role.id for role in payload.member.roles)

        try:
            cleared = await engine.handle_confirmation(
                payload.message_id,
                payload.user_id,
                payload.guild_id,
                role_ids,
            )
        except Exception as e:
            logger.error("Reaction Handling Failed", [
                ("Message", str(payload.message_id)),
                ("User", str(payload.user_id)),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:200]),
            ])
            return

        if cleared:
            logger.debug("Prompt Confirmed", [
                ("Message", str(payload.message_id)),
                ("Emoji", str(payload.emoji)),
            ])


async def setup(bot: "ModGateBot") -> None:
    """Add the reaction events cog to the bot."""
    await bot.add_cog(ReactionEvents(bot))
    logger.debug("Reaction Events Loaded")
