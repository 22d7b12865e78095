"""
ModGate - Events Package
========================

Discord event listeners that feed the moderation engine.

DESIGN:
    Each module holds one Cog and an async setup(bot) function.
    The bot loads every module in EVENT_COGS with load_extension().
"""

# =============================================================================
# Event Cog Registry
# =============================================================================

EVENT_COGS = [
    "modgate.events.messages",
    "modgate.events.reactions",
]


__all__ = ["EVENT_COGS"]
