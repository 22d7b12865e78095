#!/usr/bin/env python3
"""
ModGate - Entry Point
=====================

Loads .env, validates configuration and runs the moderation bot.
"""

import asyncio
import sys

from dotenv import load_dotenv

from modgate.core.config import ConfigValidationError, validate_and_log_config
from modgate.core.logger import logger


async def main() -> None:
    """
    Main entry point for the ModGate bot.

    Handles the complete bot lifecycle:
    1. Loads environment configuration
    2. Validates required settings
    3. Creates the bot and connects to Discord
    4. Shuts the bot down cleanly when the connection ends

    Raises:
        SystemExit: If configuration is invalid or the bot fails to start.
    """
    load_dotenv()

    logger.tree("MODGATE STARTING", [
        ("Python", sys.version.split()[0]),
    ], emoji="🔥")

    try:
        config = validate_and_log_config()
    except ConfigValidationError as e:
        logger.critical("Invalid Configuration", [("Error", str(e))])
        sys.exit(1)

    from modgate.bot import ModGateBot
    bot = ModGateBot()

    try:
        async with bot:
            await bot.start(config.discord_token)
    except Exception as e:
        logger.critical("Bot Crashed", [
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:200]),
        ])
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (Ctrl+C)")
