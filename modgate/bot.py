"""
ModGate - Main Bot Class
========================

Discord client that hosts the moderation engine.

DESIGN: Central orchestrator that:
- Loads the event and command cogs
- Registers the persistent review buttons
- Builds the DiscordPlatform adapter and ModerationEngine once connected
- Stops the engine (history sweep, classifier session) on shutdown

SERVICE INITIALIZATION ORDER:
1. setup_hook (before on_ready):
   - Event cog loading
   - Command cog loading
   - Review button registration
   - Command tree syncing

2. on_ready:
   - Error webhook
   - Moderation engine (TLD list, history sweep)
   - Metrics
"""

from datetime import datetime
from typing import Optional

import discord
from discord.ext import commands

from modgate.core.config import get_config
from modgate.core.logger import logger
from modgate.moderation.engine import ModerationEngine


# =============================================================================
# ModGateBot Class
# =============================================================================

class ModGateBot(commands.Bot):
    """Moderation bot for a single guild."""

    # =========================================================================
    # Initialization
    # =========================================================================

    def __init__(self) -> None:
        self.config = get_config()

        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True

        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
        )

        self.start_time: datetime = datetime.now()
        self.engine: Optional[ModerationEngine] = None
        self._ready_initialized: bool = False

        logger.info("Bot Instance Created")

    # =========================================================================
    # Setup Hook
    # =========================================================================

    async def setup_hook(self) -> None:
        """Load cogs, register persistent views and sync commands before on_ready."""
        from modgate.events import EVENT_COGS
        for cog in EVENT_COGS:
            try:
                await self.load_extension(cog)
                logger.debug(f"Event Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Event Cog", [("Cog", cog), ("Error", str(e))])

        from modgate.commands import COMMAND_COGS
        for cog in COMMAND_COGS:
            try:
                await self.load_extension(cog)
                logger.info(f"Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Cog", [("Cog", cog), ("Error", str(e))])

        from modgate.views.review import setup_review_views
        setup_review_views(self)

        try:
            guild = discord.Object(id=self.config.guild_id)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.tree("Commands Synced", [("Count", str(len(synced)))], emoji="✅")
        except discord.HTTPException as e:
            logger.error("Command Sync Failed", [("Error", str(e))])

    # =========================================================================
    # On Ready
    # =========================================================================

    async def on_ready(self) -> None:
        """Build the moderation engine when the bot is first ready."""
        if self._ready_initialized:
            logger.info("Bot Reconnected (skipping re-initialization)")
            return

        self._ready_initialized = True

        if not self.user:
            return

        logger.tree("BOT ONLINE", [
            ("Name", self.user.name),
            ("ID", str(self.user.id)),
            ("Guilds", str(len(self.guilds))),
        ], emoji="🚀")

        if self.config.error_webhook_url:
            logger.set_webhook(self.config.error_webhook_url)

        from modgate.services.discord_platform import DiscordPlatform
        self.engine = ModerationEngine(self.config, DiscordPlatform(self))
        await self.engine.start()

        from modgate.utils.metrics import init_metrics
        init_metrics()

        logger.tree("MODGATE READY", [
            ("Guild", str(self.config.guild_id)),
            ("Classifier", "Enabled" if self.engine.classifier.enabled else "Disabled"),
            ("Report Channel", str(self.config.report_channel_id or "Not configured")),
        ], emoji="🔥")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Stop the moderation engine before closing the connection."""
        logger.info("Shutdown Initiated")

        if self.engine is not None:
            await self.engine.stop()
            self.engine = None

        await super().close()

        logger.tree("SHUTDOWN COMPLETE", [
            ("Uptime", str(datetime.now() - self.start_time)),
        ], emoji="🛑")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["ModGateBot"]
