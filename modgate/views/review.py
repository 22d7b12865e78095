"""
ModGate - Review Buttons
========================

Persistent reviewer buttons attached to classifier removal reports.

DESIGN:
    Buttons are DynamicItems keyed by custom_id
    "modgate_<action>_<original message id>", so they keep working after a
    restart as long as the engine still holds the record. Permission
    checks and state changes live in ModerationEngine.handle_review_action.
"""

from typing import TYPE_CHECKING

import discord

from modgate.core.logger import logger
from modgate.moderation.models import ReviewAction

if TYPE_CHECKING:
    from modgate.bot import ModGateBot


# =============================================================================
# Constants
# =============================================================================

BUTTON_STYLES = {
    ReviewAction.NOT_SPAM: ("Not Spam", discord.ButtonStyle.primary),
    ReviewAction.CONFIRM_SPAM: ("Confirm Spam", discord.ButtonStyle.danger),
    ReviewAction.TEMP_EXEMPT: ("Exempt temporarily", discord.ButtonStyle.secondary),
}


REVIEW_TEMPLATE = r"modgate_(?P<action>notspam|confirmspam|tempexempt)_(?P<message_id>\d+)"


def review_custom_id(action: ReviewAction, message_id: int) -> str:
    return f"modgate_{action.value}_{message_id}"


# =============================================================================
# Review Button
# =============================================================================

class ReviewButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=REVIEW_TEMPLATE,
):
    """One reviewer action on one removed message."""

    def __init__(self, action: ReviewAction, message_id: int) -> None:
        label, style = BUTTON_STYLES[action]
        super().__init__(
            discord.ui.Button(
                label=label,
                style=style,
                custom_id=review_custom_id(action, message_id),
            )
        )
        self.action = action
        self.message_id = message_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match,
    ) -> "ReviewButton":
        return cls(ReviewAction(match.group("action")), int(match.group("message_id")))

    async def callback(self, interaction: discord.Interaction) -> None:
        """Forward the press to the moderation engine and reply with its result."""
        engine = getattr(interaction.client, "engine", None)
        if engine is None or interaction.guild is None:
            await interaction.response.send_message("Moderation is not ready yet.", ephemeral=True)
            return

        role_ids = None
        if isinstance(interaction.user, discord.Member):
            role_ids = frozenset(role.id for role in interaction.user.roles)

        logger.tree("Review Button Clicked", [
            ("Reviewer", f"{interaction.user.name} ({interaction.user.id})"),
            ("Action", self.action.name),
            ("Message ID", str(self.message_id)),
        ], emoji="🔘")

        result = await engine.handle_review_action(
            self.action,
            self.message_id,
            interaction.user.id,
            interaction.guild.id,
            role_ids,
        )
        await interaction.response.send_message(result.message, ephemeral=not result.ok)


# =============================================================================
# View Builder
# =============================================================================

def build_review_view(message_id: int) -> discord.ui.View:
    """Persistent view with all three reviewer actions for message_id."""
    view = discord.ui.View(timeout=None)
    for action in ReviewAction:
        view.add_item(ReviewButton(action, message_id))
    return view


def setup_review_views(bot: "ModGateBot") -> None:
    """Register the dynamic review buttons so old reports keep working."""
    bot.add_dynamic_items(ReviewButton)
    logger.debug("Review Views Registered")


__all__ = [
    "ReviewButton",
    "build_review_view",
    "setup_review_views",
    "review_custom_id",
    "REVIEW_TEMPLATE",
]
