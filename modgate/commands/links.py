"""
ModGate - Link Exception Commands
=================================

Reviewer slash commands that manage runtime hostname exceptions for the
link gate.

DESIGN:
    Exceptions live in the engine's memory only and are lost on restart;
    permanent exceptions belong in ALLOWED_HOSTS. Only members holding an
    elevated role may use these commands.

Features:
    - /allowhost <host>: Let links to host and its subdomains through
    - /revokehost <host>: Remove a runtime exception
    - /allowedhosts: List runtime exceptions
"""

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from modgate.core.config import EmbedColors, get_config, has_elevated_role
from modgate.core.logger import logger

if TYPE_CHECKING:
    from modgate.bot import ModGateBot


class LinksCog(commands.Cog):
    """Runtime link gate exceptions."""

    def __init__(self, bot: "ModGateBot") -> None:
        self.bot = bot
        self.config = get_config()

    async def _check(self, interaction: discord.Interaction) -> bool:
        """Reply and return False unless the user may manage exceptions."""
        role_ids = None
        if isinstance(interaction.user, discord.Member):
            role_ids = [role.id for role in interaction.user.roles]

        if not has_elevated_role(role_ids, self.config):
            logger.tree("Link Command Denied", [
                ("User", f"{interaction.user} ({interaction.user.id})"),
                ("Reason", "No elevated role"),
            ], emoji="🚫")
            await interaction.response.send_message(
                "You don't have permission to use this command.",
                ephemeral=True,
            )
            return False

        if self.bot.engine is None:
            await interaction.response.send_message("Moderation is not ready yet.", ephemeral=True)
            return False
        return True

    @app_commands.command(name="allowhost", description="Let links to a hostname through the link gate")
    @app_commands.describe(host="Hostname such as example.com (subdomains are included)")
    async def allowhost(self, interaction: discord.Interaction, host: str) -> None:
        if not await self._check(interaction):
            return

        hostname = self.bot.engine.approve_host(host)
        if not hostname:
            await interaction.response.send_message(f"`{host}` is not a valid hostname.", ephemeral=True)
            return

        logger.tree("Host Approved", [
            ("Host", hostname),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="🔗")
        await interaction.response.send_message(f"Links to `{hostname}` are now allowed.", ephemeral=True)

    @app_commands.command(name="revokehost", description="Remove a runtime hostname exception")
    @app_commands.describe(host="Hostname previously approved with /allowhost")
    async def revokehost(self, interaction: discord.Interaction, host: str) -> None:
        if not await self._check(interaction):
            return

        if not self.bot.engine.revoke_host(host):
            await interaction.response.send_message(f"`{host}` has no runtime exception.", ephemeral=True)
            return

        logger.tree("Host Revoked", [
            ("Host", host),
            ("By", f"{interaction.user} ({interaction.user.id})"),
        ], emoji="🔗")
        await interaction.response.send_message(f"Links to `{host}` are held again.", ephemeral=True)

    @app_commands.command(name="allowedhosts", description="List runtime hostname exceptions")
    async def allowedhosts(self, interaction: discord.Interaction) -> None:
        if not await self._check(interaction):
            return

        hosts = self.bot.engine.approved_hosts
        embed = discord.Embed(
            title="Runtime Link Exceptions",
            description="\n".join(f"`{h}`" for h in hosts) if hosts else "None",
            color=EmbedColors.INFO,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: "ModGateBot") -> None:
    """Add the links cog to the bot."""
    await bot.add_cog(LinksCog(bot))
    logger.debug("Links Cog Loaded")
