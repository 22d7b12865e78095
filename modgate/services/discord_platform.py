"""
ModGate - Discord Platform Adapter
==================================

Implements the ChatPlatform port with discord.py, and converts
discord.Message objects into InboundMessage snapshots.

DESIGN:
    Only this module knows about discord.py types on the outbound side.
    Notices are rendered here into content + embed + reviewer buttons.
    discord.NotFound on member lookups becomes MemberNotFound; any other
    discord.HTTPException becomes PlatformOperationFailed. Deleting a
    message that is already gone is not an error.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

import discord

from modgate.core.config import Config
from modgate.core.logger import logger
from modgate.moderation.errors import MemberNotFound, PlatformOperationFailed
from modgate.moderation.models import InboundMessage, MemberInfo, MessageRef, Notice
from modgate.views.review import build_review_view

if TYPE_CHECKING:
    from modgate.bot import ModGateBot


# =============================================================================
# Inbound Conversion
# =============================================================================

def is_exempt_thread(channel: Any, config: Config) -> bool:
    """Threads under a configured parent or any forum are exempt from flagging."""
    if not isinstance(channel, discord.Thread):
        return False
    if channel.parent_id in config.exempt_thread_parent_ids:
        return True
    return isinstance(channel.parent, discord.ForumChannel)


def build_inbound_message(message: discord.Message, config: Config) -> Optional[InboundMessage]:
    """
    Snapshot a guild message for the moderation core.

    Returns:
        None for messages outside a guild.
    """
    if message.guild is None:
        return None

    author = message.author
    role_ids = None
    can_send = True
    if isinstance(author, discord.Member):
        role_ids = frozenset(role.id for role in author.roles)
        can_send = message.channel.permissions_for(author).send_messages

    return InboundMessage(
        id=message.id,
        guild_id=message.guild.id,
        channel_id=message.channel.id,
        author_id=author.id,
        author_name=author.name,
        author_display_name=author.display_name,
        author_is_bot=author.bot,
        author_role_ids=role_ids,
        content=message.content,
        clean_content=message.clean_content,
        created_at=message.created_at,
        mentions_everyone=message.mention_everyone,
        can_send=can_send,
        in_exempt_thread=is_exempt_thread(message.channel, config),
    )


# =============================================================================
# Notice Rendering
# =============================================================================

def render_notice(notice: Notice) -> Dict[str, Any]:
    """Build discord.py send/edit kwargs for a notice."""
    kwargs: Dict[str, Any] = {"content": notice.content}

    if notice.has_embed:
        embed = discord.Embed(
            title=notice.title,
            description=notice.description,
            color=notice.color,
        )
        for field in notice.fields:
            if field.value:
                embed.add_field(name=field.name, value=field.value, inline=field.inline)
        if notice.thumbnail_url:
            embed.set_thumbnail(url=notice.thumbnail_url)
        if notice.footer:
            embed.set_footer(text=notice.footer)
        kwargs["embed"] = embed

    if notice.review_key is not None:
        kwargs["view"] = build_review_view(notice.review_key)

    return kwargs


# =============================================================================
# Platform Adapter
# =============================================================================

class DiscordPlatform:
    """ChatPlatform backed by a running discord.py bot."""

    def __init__(self, bot: "ModGateBot") -> None:
        self.bot = bot

    async def _channel(self, channel_id: int) -> Any:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            guild = await self.bot.fetch_guild(guild_id)
        return guild

    async def _partial(self, ref: MessageRef) -> discord.PartialMessage:
        channel = await self._channel(ref.channel_id)
        return channel.get_partial_message(ref.message_id)

    async def _member(self, guild_id: int, user_id: int) -> discord.Member:
        try:
            guild = await self._guild(guild_id)
            member = guild.get_member(user_id)
            if member is None:
                member = await guild.fetch_member(user_id)
            return member
        except discord.NotFound as e:
            raise MemberNotFound(guild_id, user_id) from e

    # =========================================================================
    # Messages
    # =========================================================================

    async def delete_message(self, ref: MessageRef) -> None:
        try:
            partial = await self._partial(ref)
            await partial.delete()
        except discord.NotFound:
            logger.debug("Message Already Deleted", [("Message", str(ref.message_id))])
        except discord.HTTPException as e:
            raise PlatformOperationFailed("delete_message", e) from e

    async def send_message(self, channel_id: int, notice: Notice) -> MessageRef:
        try:
            channel = await self._channel(channel_id)
            sent = await channel.send(**render_notice(notice))
        except discord.HTTPException as e:
            raise PlatformOperationFailed("send_message", e) from e
        return MessageRef(sent.channel.id, sent.id)

    async def edit_message(self, ref: MessageRef, notice: Notice) -> None:
        kwargs = render_notice(notice)
        kwargs.setdefault("view", None)
        kwargs.setdefault("embed", None)
        try:
            partial = await self._partial(ref)
            await partial.edit(**kwargs)
        except discord.HTTPException as e:
            raise PlatformOperationFailed("edit_message", e) from e

    async def add_reaction(self, ref: MessageRef, emoji: str) -> None:
        try:
            partial = await self._partial(ref)
            await partial.add_reaction(emoji)
        except discord.HTTPException as e:
            raise PlatformOperationFailed("add_reaction", e) from e

    # =========================================================================
    # Members
    # =========================================================================

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberInfo:
        try:
            member = await self._member(guild_id, user_id)
        except discord.HTTPException as e:
            raise PlatformOperationFailed("fetch_member", e) from e
        return MemberInfo(
            user_id=member.id,
            guild_id=guild_id,
            role_ids=frozenset(role.id for role in member.roles),
            display_name=member.display_name,
        )

    async def kick_member(self, guild_id: int, user_id: int, reason: str) -> None:
        try:
            guild = await self._guild(guild_id)
            await guild.kick(discord.Object(id=user_id), reason=reason)
        except discord.NotFound as e:
            raise MemberNotFound(guild_id, user_id) from e
        except discord.HTTPException as e:
            raise PlatformOperationFailed("kick_member", e) from e

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        try:
            member = await self._member(guild_id, user_id)
            await member.add_roles(discord.Object(id=role_id), reason="Confirmed human")
        except discord.HTTPException as e:
            raise PlatformOperationFailed("add_role", e) from e

    async def remove_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        try:
            member = await self._member(guild_id, user_id)
            await member.remove_roles(discord.Object(id=role_id))
        except discord.HTTPException as e:
            raise PlatformOperationFailed("remove_role", e) from e

    async def send_direct_message(self, user_id: int, notice: Notice) -> bool:
        """Returns False when the user has DMs closed."""
        try:
            user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
            await user.send(**render_notice(notice))
        except discord.Forbidden:
            return False
        except discord.HTTPException as e:
            raise PlatformOperationFailed("send_direct_message", e) from e
        return True

    # =========================================================================
    # Invites
    # =========================================================================

    async def resolve_invite(self, code: str) -> Optional[str]:
        """Name of the server an invite points at, None if the invite is dead."""
        try:
            invite = await self.bot.fetch_invite(code, with_counts=False)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            raise PlatformOperationFailed("resolve_invite", e) from e
        guild = getattr(invite, "guild", None)
        return getattr(guild, "name", None)


__all__ = [
    "DiscordPlatform",
    "build_inbound_message",
    "render_notice",
    "is_exempt_thread",
]
