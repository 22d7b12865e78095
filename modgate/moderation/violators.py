"""
ModGate - Violator State Machine
================================

Tracks users whose message was removed and who have not been cleared yet.

DESIGN:
    One record per author, never a log:

        CLEAN --flag--> SOFT_FLAGGED --flag--> ESCALATED --flag--> KICKED
                             |                     |
                             +------confirm--------+--> CLEARED

    A record is created on the first soft action (warn/hold) and removed
    when the user is cleared or kicked. Users who already carry more than
    one non-ignored role are never flagged at all.

    Callers must hold the author's lock from KeyedLock.
"""

from typing import Dict, FrozenSet, Optional

from modgate.core.config import Config, effective_role_count, has_elevated_role
from modgate.core.constants import (
    COMPROMISED_ACCOUNT_DM,
    CONFIRM_EMOJI,
    REPEAT_OFFENDER_KICK_REASON,
    REPOST_TEXT,
)
from modgate.core.logger import logger
from modgate.moderation.errors import MemberNotFound, PlatformOperationFailed
from modgate.moderation.history import MessageHistory
from modgate.moderation.models import (
    InboundMessage,
    MessageRef,
    Notice,
    ViolatorRecord,
    ViolatorState,
)
from modgate.moderation.platform import ChatPlatform, attempt
from modgate.utils.async_utils import safe_async_operation


class ViolatorTracker:
    """Owns every ViolatorRecord, keyed by author id."""

    def __init__(self, platform: ChatPlatform, config: Config, history: MessageHistory) -> None:
        self.platform = platform
        self.config = config
        self.history = history
        self._records: Dict[int, ViolatorRecord] = {}

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, author_id: int) -> Optional[ViolatorRecord]:
        return self._records.get(author_id)

    def find_by_prompt(self, message_id: int) -> Optional[ViolatorRecord]:
        for record in self._records.values():
            if record.prompt_ref is not None and record.prompt_ref.message_id == message_id:
                return record
        return None

    def find_by_original(self, message_id: int) -> Optional[ViolatorRecord]:
        for record in self._records.values():
            if record.original_message_id == message_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, author_id: int) -> bool:
        return author_id in self._records

    # =========================================================================
    # Flagging
    # =========================================================================

    async def _resolve_roles(self, message: InboundMessage) -> Optional[FrozenSet[int]]:
        if message.author_role_ids is not None:
            return message.author_role_ids
        try:
            member = await self.platform.fetch_member(message.guild_id, message.author_id)
        except (MemberNotFound, PlatformOperationFailed) as e:
            logger.warning("Flag Skipped: Member Unavailable", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Reason", type(e).__name__),
            ])
            return None
        return member.role_ids

    async def flag(
        self,
        message: InboundMessage,
        notice: Notice,
        *,
        confirmable: bool,
        clear_history_on_kick: bool = False,
    ) -> ViolatorState:
        """
        Apply a soft action to message's author.

        Returns:
            The state the author ended in. CLEAN means nothing was done.
        """
        role_ids = await self._resolve_roles(message)
        if role_ids is None:
            return ViolatorState.CLEAN

        if effective_role_count(role_ids, self.config) > 1:
            logger.tree("Flag Skipped: Member Has Roles", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Roles", str(len(role_ids))),
                ("Message", message.jump_url),
            ], emoji="🛡️")
            return ViolatorState.CLEAN

        if message.in_exempt_thread:
            logger.tree("Flag Skipped: Exempt Thread", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Message", message.jump_url),
            ], emoji="🛡️")
            return ViolatorState.CLEAN

        await attempt("delete_message", self.platform.delete_message(message.ref))

        record = self._records.get(message.author_id)
        if record is not None:
            return await self.escalate(record, message, clear_history_on_kick)

        prompt_ref = await attempt("send_message", self.platform.send_message(message.channel_id, notice))
        record = ViolatorRecord(
            author_id=message.author_id,
            guild_id=message.guild_id,
            author_name=message.author_name,
            author_display_name=message.author_display_name or message.author_name,
            original_content=message.text,
            prompt_ref=prompt_ref,
            original_message_id=message.id,
            confirmable=confirmable,
        )
        self._records[message.author_id] = record

        if confirmable and prompt_ref is not None:
            await attempt("add_reaction", self.platform.add_reaction(prompt_ref, CONFIRM_EMOJI))

        logger.tree("Violator Flagged", [
            ("User", f"{message.author_name} ({message.author_id})"),
            ("Confirmable", "Yes" if confirmable else "No"),
            ("Content", message.text[:80]),
        ], emoji="🚩")
        return ViolatorState.SOFT_FLAGGED

    async def escalate(
        self,
        record: ViolatorRecord,
        message: InboundMessage,
        clear_history_on_kick: bool = False,
    ) -> ViolatorState:
        """
        Count another violation against a live record.

        Kicks on an everyone-mention or once the count passes the
        configured threshold.

        Returns:
            KICKED or ESCALATED.
        """
        record.violation_count += 1
        if message.mentions_everyone or record.violation_count > self.config.kick_violation_threshold:
            await self._kick(record, message, clear_history_on_kick)
            return ViolatorState.KICKED
        logger.tree("Violator Escalated", [
            ("User", f"{message.author_name} ({message.author_id})"),
            ("Violations", str(record.violation_count)),
        ], emoji="⚠️")
        return ViolatorState.ESCALATED

    async def discard(self, author_id: int) -> None:
        """Drop author_id's record after a kick decided elsewhere."""
        record = self._records.pop(author_id, None)
        if record is not None and record.prompt_ref is not None:
            await attempt("delete_message", self.platform.delete_message(record.prompt_ref))

    async def _kick(self, record: ViolatorRecord, message: InboundMessage, clear_history: bool) -> None:
        if record.prompt_ref is not None:
            await attempt("delete_message", self.platform.delete_message(record.prompt_ref))

        await safe_async_operation(
            "Send Compromised Account DM",
            self.platform.send_direct_message(message.author_id, Notice(content=COMPROMISED_ACCOUNT_DM)),
            default=False,
            log_level="debug",
        )
        await attempt(
            "kick_member",
            self.platform.kick_member(message.guild_id, message.author_id, REPEAT_OFFENDER_KICK_REASON),
        )

        cleared = 0
        if clear_history:
            for entry in self.history.remove_guild_entries(message.author_id, message.guild_id, exclude=message.id):
                await attempt("delete_message", self.platform.delete_message(entry.message_ref))
                cleared += 1

        self._records.pop(record.author_id, None)

        logger.tree("Violator Kicked", [
            ("User", f"{message.author_name} ({message.author_id})"),
            ("Violations", str(record.violation_count)),
            ("Mentions Everyone", "Yes" if message.mentions_everyone else "No"),
            ("History Cleared", str(cleared)),
        ], emoji="👢")

    async def register_classifier_removal(
        self,
        message: InboundMessage,
        prompt_ref: Optional[MessageRef],
        report_ref: Optional[MessageRef] = None,
    ) -> ViolatorRecord:
        """
        Create the record for a classifier deletion, or repoint a live one.

        The record points at the latest removed message so reviewer
        buttons on its report can find it. It can't be cleared by reaction.
        Escalation of an existing record is the caller's job (escalate()),
        done before the removal notice is sent.
        """
        record = self._records.get(message.author_id)
        if record is None:
            record = ViolatorRecord(
                author_id=message.author_id,
                guild_id=message.guild_id,
                author_name=message.author_name,
                author_display_name=message.author_display_name or message.author_name,
                original_content=message.content,
            )
            self._records[message.author_id] = record
        elif record.prompt_ref is not None and record.prompt_ref != prompt_ref:
            await attempt("delete_message", self.platform.delete_message(record.prompt_ref))

        record.original_content = message.content
        record.original_message_id = message.id
        record.prompt_ref = prompt_ref
        record.report_ref = report_ref
        record.confirmable = False
        return record

    # =========================================================================
    # Clearing
    # =========================================================================

    async def confirm(
        self,
        record: ViolatorRecord,
        reactor_id: int,
        guild_id: int,
        reactor_role_ids: Optional[FrozenSet[int]] = None,
    ) -> bool:
        """
        Clear record on a reaction from its author or an elevated reviewer.

        Anyone else is ignored.

        Returns:
            True when the record was cleared.
        """
        if reactor_id != record.author_id:
            if reactor_role_ids is None:
                try:
                    member = await self.platform.fetch_member(guild_id, reactor_id)
                except (MemberNotFound, PlatformOperationFailed):
                    return False
                reactor_role_ids = member.role_ids
            if not has_elevated_role(reactor_role_ids, self.config):
                return False

        await self.release(record, grant_trusted_role=True)
        logger.tree("Violator Cleared", [
            ("User", f"{record.author_name} ({record.author_id})"),
            ("Confirmed By", str(reactor_id)),
        ], emoji="✅")
        return True

    async def release(self, record: ViolatorRecord, grant_trusted_role: bool = False) -> None:
        """Repost the original content, delete the prompt and drop the record."""
        if record.prompt_ref is not None:
            repost = Notice(content=REPOST_TEXT.format(
                user_id=record.author_id,
                username=record.author_name,
                content=record.original_content,
            ))
            await attempt("send_message", self.platform.send_message(record.prompt_ref.channel_id, repost))
            await attempt("delete_message", self.platform.delete_message(record.prompt_ref))

        if grant_trusted_role and self.config.trusted_role_id:
            await attempt(
                "add_role",
                self.platform.add_role(record.guild_id, record.author_id, self.config.trusted_role_id),
            )

        self._records.pop(record.author_id, None)


__all__ = ["ViolatorTracker"]
