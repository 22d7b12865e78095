"""
Tests for modgate/services/discord_platform.py and modgate/views/review.py

Covers inbound message snapshots, notice rendering, discord.py error
translation and the persistent reviewer buttons.
"""

import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from modgate.moderation.errors import MemberNotFound, PlatformOperationFailed
from modgate.moderation.models import MessageRef, Notice, NoticeField, ReviewAction, ReviewResult
from modgate.services.discord_platform import (
    DiscordPlatform,
    build_inbound_message,
    is_exempt_thread,
    render_notice,
)
from modgate.views.review import REVIEW_TEMPLATE, ReviewButton, review_custom_id

from conftest import CHANNEL_ID, ELEVATED_ROLE_ID, GUILD_ID, USER_ID


def http_error(cls, status):
    return cls(MagicMock(status=status, reason="error"), "error")


def mock_role(role_id):
    role = MagicMock()
    role.id = role_id
    return role


@pytest.fixture
def bot():
    bot = MagicMock()
    bot.fetch_channel = AsyncMock()
    bot.fetch_guild = AsyncMock()
    bot.fetch_user = AsyncMock()
    bot.fetch_invite = AsyncMock()
    return bot


@pytest.fixture
def channel(bot):
    channel = MagicMock()
    partial = MagicMock()
    partial.delete = AsyncMock()
    partial.edit = AsyncMock()
    partial.add_reaction = AsyncMock()
    channel.get_partial_message.return_value = partial
    channel.send = AsyncMock()
    bot.get_channel.return_value = channel
    return channel


@pytest.fixture
def guild(bot):
    guild = MagicMock()
    guild.kick = AsyncMock()
    guild.fetch_member = AsyncMock()
    bot.get_guild.return_value = guild
    return guild


# =============================================================================
# Inbound Conversion Tests
# =============================================================================

class TestBuildInboundMessage:
    """Tests for build_inbound_message and is_exempt_thread."""

    def make_discord_message(self, config, send_messages=True):
        author = MagicMock(spec=discord.Member)
        author.id = USER_ID
        author.name = "spammer"
        author.display_name = "Spammer"
        author.bot = False
        author.roles = [mock_role(GUILD_ID), mock_role(42)]

        message = MagicMock()
        message.id = 10
        message.guild.id = GUILD_ID
        message.channel.id = CHANNEL_ID
        message.channel.permissions_for.return_value = MagicMock(send_messages=send_messages)
        message.author = author
        message.content = "hi @everyone"
        message.clean_content = "hi everyone"
        message.created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        message.mention_everyone = True
        return message

    def test_member_snapshot(self, config):
        inbound = build_inbound_message(self.make_discord_message(config), config)

        assert inbound.id == 10
        assert inbound.author_id == USER_ID
        assert inbound.author_role_ids == frozenset({GUILD_ID, 42})
        assert inbound.mentions_everyone
        assert inbound.can_send
        assert not inbound.in_exempt_thread

    def test_cannot_send(self, config):
        inbound = build_inbound_message(self.make_discord_message(config, send_messages=False), config)
        assert not inbound.can_send

    def test_dm_ignored(self, config):
        message = MagicMock()
        message.guild = None
        assert build_inbound_message(message, config) is None

    def test_exempt_thread_parent(self, config):
        config.exempt_thread_parent_ids = {77}
        thread = MagicMock(spec=discord.Thread)
        thread.parent_id = 77
        assert is_exempt_thread(thread, config)

    def test_forum_thread(self, config):
        thread = MagicMock(spec=discord.Thread)
        thread.parent_id = 78
        thread.parent = MagicMock(spec=discord.ForumChannel)
        assert is_exempt_thread(thread, config)

    def test_plain_channel(self, config):
        assert not is_exempt_thread(MagicMock(spec=discord.TextChannel), config)


# =============================================================================
# Notice Rendering Tests
# =============================================================================

class TestRenderNotice:

    def test_content_only(self):
        assert render_notice(Notice(content="hi")) == {"content": "hi"}

    def test_embed(self):
        kwargs = render_notice(Notice(
            title="Robot Check",
            description="react",
            fields=(NoticeField("a", "1"), NoticeField("empty", "")),
            color=0xFFCC00,
            footer="footer text",
        ))
        embed = kwargs["embed"]
        assert embed.title == "Robot Check"
        assert len(embed.fields) == 1
        assert embed.footer.text == "footer text"

    @pytest.mark.asyncio
    async def test_review_buttons(self):
        kwargs = render_notice(Notice(content="report", review_key=55))
        custom_ids = [item.custom_id for item in kwargs["view"].children]
        assert custom_ids == ["modgate_notspam_55", "modgate_confirmspam_55", "modgate_tempexempt_55"]


# =============================================================================
# Platform Adapter Tests
# =============================================================================

class TestDiscordPlatform:
    """Tests for error translation in DiscordPlatform."""

    @pytest.mark.asyncio
    async def test_delete_already_gone(self, bot, channel):
        channel.get_partial_message.return_value.delete.side_effect = http_error(discord.NotFound, 404)
        await DiscordPlatform(bot).delete_message(MessageRef(CHANNEL_ID, 1))

    @pytest.mark.asyncio
    async def test_delete_failure(self, bot, channel):
        channel.get_partial_message.return_value.delete.side_effect = http_error(discord.Forbidden, 403)
        with pytest.raises(PlatformOperationFailed):
            await DiscordPlatform(bot).delete_message(MessageRef(CHANNEL_ID, 1))

    @pytest.mark.asyncio
    async def test_send_returns_ref(self, bot, channel):
        sent = MagicMock()
        sent.id = 99
        sent.channel.id = CHANNEL_ID
        channel.send.return_value = sent

        ref = await DiscordPlatform(bot).send_message(CHANNEL_ID, Notice(content="hi"))

        assert ref == MessageRef(CHANNEL_ID, 99)
        channel.send.assert_awaited_once_with(content="hi")

    @pytest.mark.asyncio
    async def test_fetch_member(self, bot, guild):
        member = MagicMock()
        member.id = USER_ID
        member.roles = [mock_role(GUILD_ID), mock_role(ELEVATED_ROLE_ID)]
        guild.get_member.return_value = member

        info = await DiscordPlatform(bot).fetch_member(GUILD_ID, USER_ID)
        assert info.role_ids == frozenset({GUILD_ID, ELEVATED_ROLE_ID})

    @pytest.mark.asyncio
    async def test_member_not_found(self, bot, guild):
        guild.get_member.return_value = None
        guild.fetch_member.side_effect = http_error(discord.NotFound, 404)
        with pytest.raises(MemberNotFound):
            await DiscordPlatform(bot).fetch_member(GUILD_ID, USER_ID)

    @pytest.mark.asyncio
    async def test_kick(self, bot, guild):
        await DiscordPlatform(bot).kick_member(GUILD_ID, USER_ID, "spam")
        target = guild.kick.await_args.args[0]
        assert target.id == USER_ID
        assert guild.kick.await_args.kwargs["reason"] == "spam"

    @pytest.mark.asyncio
    async def test_dm_closed(self, bot):
        user = MagicMock()
        user.send = AsyncMock(side_effect=http_error(discord.Forbidden, 403))
        bot.get_user.return_value = user
        assert not await DiscordPlatform(bot).send_direct_message(USER_ID, Notice(content="hi"))

    @pytest.mark.asyncio
    async def test_resolve_invite(self, bot):
        invite = MagicMock()
        invite.guild.name = "Python Devs"
        bot.fetch_invite.return_value = invite
        assert await DiscordPlatform(bot).resolve_invite("abc") == "Python Devs"

    @pytest.mark.asyncio
    async def test_dead_invite(self, bot):
        bot.fetch_invite.side_effect = http_error(discord.NotFound, 404)
        assert await DiscordPlatform(bot).resolve_invite("abc") is None

    @pytest.mark.asyncio
    async def test_invite_lookup_failure(self, bot):
        bot.fetch_invite.side_effect = http_error(discord.HTTPException, 500)
        with pytest.raises(PlatformOperationFailed):
            await DiscordPlatform(bot).resolve_invite("abc")


# =============================================================================
# Review Button Tests
# =============================================================================

class TestReviewButton:
    """Tests for the persistent reviewer buttons."""

    def test_custom_id_matches_template(self):
        custom_id = review_custom_id(ReviewAction.TEMP_EXEMPT, 123)
        match = re.fullmatch(REVIEW_TEMPLATE, custom_id)
        assert match.group("action") == "tempexempt"
        assert match.group("message_id") == "123"

    @pytest.mark.asyncio
    async def test_from_custom_id(self):
        match = re.fullmatch(REVIEW_TEMPLATE, "modgate_confirmspam_42")
        button = await ReviewButton.from_custom_id(MagicMock(), MagicMock(), match)
        assert button.action is ReviewAction.CONFIRM_SPAM
        assert button.message_id == 42

    @pytest.mark.asyncio
    async def test_callback_forwards_to_engine(self):
        interaction = MagicMock()
        interaction.guild.id = GUILD_ID
        interaction.user = MagicMock(spec=discord.Member)
        interaction.user.id = 7
        interaction.user.name = "mod"
        interaction.user.roles = [mock_role(ELEVATED_ROLE_ID)]
        interaction.client.engine.handle_review_action = AsyncMock(
            return_value=ReviewResult(True, "Update success"),
        )
        interaction.response.send_message = AsyncMock()

        await ReviewButton(ReviewAction.NOT_SPAM, 42).callback(interaction)

        interaction.client.engine.handle_review_action.assert_awaited_once_with(
            ReviewAction.NOT_SPAM, 42, 7, GUILD_ID, frozenset({ELEVATED_ROLE_ID}),
        )
        interaction.response.send_message.assert_awaited_once_with("Update success", ephemeral=False)
