"""
ModGate - Commands Package
==========================

Slash commands for reviewers, implemented as discord.py Cogs.

Available Commands:
    /allowhost: Let links to a hostname through the link gate
    /revokehost: Remove a runtime hostname exception
    /allowedhosts: List runtime hostname exceptions
"""

# =============================================================================
# Command Cog Registry
# =============================================================================

COMMAND_COGS = [
    "modgate.commands.links",
]


__all__ = ["COMMAND_COGS"]
