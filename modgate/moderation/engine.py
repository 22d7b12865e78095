"""
ModGate - Moderation Engine
===========================

Owns all moderation state and routes the three inbound event streams:
messages, prompt reactions and reviewer buttons.

DESIGN:
    History, violator records and classifier exemptions belong to one
    engine instance, never to module globals. Every mutation of a user's
    state happens under that user's KeyedLock:

    - process_message holds the author's lock for record -> evaluate ->
      reports -> resolve -> dispatch.
    - handle_confirmation / handle_review_action look the record up,
      take the author's lock, then check the record is still the live one
      before touching it.
    - The history sweep takes each user's lock while pruning them.

    Reports carried by triggered verdicts (blocked url, misleading links,
    potential spam) are posted for every triggered rule, whichever action
    wins and even when the author is exempt from the action itself.

    A classifier removal is applied even when another rule wins the
    WARN_CUSTOM tie or kicks the author.
"""

from dataclasses import replace
from typing import FrozenSet, List, Optional

from modgate.core.config import Config, has_elevated_role
from modgate.core.constants import (
    CLASSIFIER_DISABLED_REPLY,
    RECORD_NOT_FOUND_REPLY,
    REVIEW_DENIED_REPLY,
)
from modgate.core.logger import logger
from modgate.moderation.classifier import ClassifierGateway
from modgate.moderation.detectors import parse_hostname
from modgate.moderation.dispatcher import ActionDispatcher
from modgate.moderation.errors import ClassifierUnavailable, MemberNotFound, PlatformOperationFailed
from modgate.moderation.history import MessageHistory
from modgate.moderation.models import (
    ActionKind,
    HistoryEntry,
    InboundMessage,
    Notice,
    ReviewAction,
    ReviewResult,
    RuleOutcome,
    RuleResult,
)
from modgate.moderation.platform import ChatPlatform, attempt
from modgate.moderation.rules import RuleSet
from modgate.moderation.violators import ViolatorTracker
from modgate.utils.locks import KeyedLock


class ModerationEngine:
    """
    Entry point of the moderation core.

    Attributes:
        history: Sliding-window message history.
        tracker: Violator state machine.
        classifier: External classifier gateway.
        rules: Rule evaluators and their shared state.
        pipeline: Ordered rule pipeline.
        dispatcher: Action dispatcher.
    """

    def __init__(
        self,
        config: Config,
        platform: ChatPlatform,
        classifier: Optional[ClassifierGateway] = None,
    ) -> None:
        self.config = config
        self.platform = platform
        self.locks = KeyedLock()
        self.history = MessageHistory(config.history_retention, self.locks)
        self.classifier = classifier or ClassifierGateway(
            url=config.classifier_url,
            enabled=config.classifier_enabled,
            timeout=config.classifier_timeout,
        )
        self.tracker = ViolatorTracker(platform, config, self.history)
        self.rules = RuleSet(config, platform, self.history, self.classifier)
        self.pipeline = self.rules.build_pipeline()
        self.dispatcher = ActionDispatcher(platform, self.tracker, config)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, load_tlds: bool = True) -> None:
        """Load the TLD list and start the history sweep."""
        if load_tlds:
            await self.rules.load_tlds()
        self.history.start()
        logger.tree("Moderation Engine Started", [
            ("Rules", ", ".join(self.pipeline.rule_names)),
            ("Classifier", "Enabled" if self.classifier.enabled else "Disabled"),
            ("Report Channel", str(self.config.report_channel_id or "None")),
        ], emoji="🛡️")

    async def stop(self) -> None:
        await self.history.stop()
        await self.classifier.close()
        logger.info("Moderation Engine Stopped")

    # =========================================================================
    # Messages
    # =========================================================================

    async def _with_roles(self, message: InboundMessage) -> InboundMessage:
        if message.author_role_ids is not None:
            return message
        try:
            member = await self.platform.fetch_member(message.guild_id, message.author_id)
        except (MemberNotFound, PlatformOperationFailed) as e:
            logger.debug("Author Roles Unavailable", [
                ("User", str(message.author_id)),
                ("Reason", type(e).__name__),
            ])
            return message
        return replace(message, author_role_ids=member.role_ids)

    async def _post_reports(self, message: InboundMessage, triggered: List[RuleResult]) -> None:
        for result in triggered:
            notice = getattr(result.verdict, "admin_notice", None)
            if notice is None:
                continue
            logger.tree("Moderation Report", [
                ("Rule", result.rule_name),
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Report", (notice.content or "")[:120]),
            ], emoji="📝")
            if self.config.report_channel_id:
                await attempt("send_message", self.platform.send_message(self.config.report_channel_id, notice))

    async def process_message(self, message: InboundMessage) -> Optional[RuleOutcome]:
        """
        Run one message through the pipeline and apply at most one action.

        Returns:
            The dispatched outcome, or None when nothing was dispatched.
        """
        if message.author_is_bot or not message.can_send:
            return None

        async with self.locks.hold(message.author_id):
            message = await self._with_roles(message)
            self.history.record(HistoryEntry(
                user_id=message.author_id,
                guild_id=message.guild_id,
                message_ref=message.ref,
                content=message.content,
                timestamp=message.created_at,
            ))

            results = await self.pipeline.evaluate_all(message)
            triggered = [r for r in results if r.triggered]
            if not triggered:
                return None

            logger.tree("Rules Triggered", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Rules", ", ".join(f"{r.rule_name}:{r.action.name}" for r in triggered)),
                ("Message", message.jump_url),
            ], emoji="🚨")

            await self._post_reports(message, triggered)

            if has_elevated_role(message.author_role_ids, self.config):
                logger.info("Elevated Author Exempt", [("User", str(message.author_id))])
                return None

            outcome = self.pipeline.resolve(results)
            await self.dispatcher.dispatch(outcome, message)

            removal = self._classifier_removal(triggered)
            if removal is not None and removal.rule_name != outcome.rule_name:
                await self.dispatcher.apply_classifier_removal(
                    RuleOutcome.from_result(removal),
                    message,
                    author_kicked=outcome.action is ActionKind.KICK,
                )
            return outcome

    @staticmethod
    def _classifier_removal(triggered: List[RuleResult]) -> Optional[RuleResult]:
        for result in triggered:
            if result.action is ActionKind.WARN_CUSTOM and getattr(result.verdict, "classifier", None) is not None:
                return result
        return None

    # =========================================================================
    # Reactions
    # =========================================================================

    async def handle_confirmation(
        self,
        prompt_message_id: int,
        reactor_id: int,
        guild_id: int,
        reactor_role_ids: Optional[FrozenSet[int]] = None,
    ) -> bool:
        """
        Handle a reaction on a prompt.

        Returns:
            True when the reaction cleared a record.
        """
        record = self.tracker.find_by_prompt(prompt_message_id)
        if record is None or not record.confirmable:
            return False

        async with self.locks.hold(record.author_id):
            if self.tracker.get(record.author_id) is not record:
                return False
            return await self.tracker.confirm(record, reactor_id, guild_id, reactor_role_ids)

    # =========================================================================
    # Reviewer Actions
    # =========================================================================

    async def _reviewer_is_elevated(
        self,
        reviewer_id: int,
        guild_id: int,
        reviewer_role_ids: Optional[FrozenSet[int]],
    ) -> bool:
        if reviewer_role_ids is None:
            try:
                member = await self.platform.fetch_member(guild_id, reviewer_id)
            except (MemberNotFound, PlatformOperationFailed):
                return False
            reviewer_role_ids = member.role_ids
        return has_elevated_role(reviewer_role_ids, self.config)

    async def handle_review_action(
        self,
        action: ReviewAction,
        original_message_id: int,
        reviewer_id: int,
        guild_id: int,
        reviewer_role_ids: Optional[FrozenSet[int]] = None,
    ) -> ReviewResult:
        """Apply a reviewer button press on a classifier removal report."""
        if not self.classifier.enabled:
            return ReviewResult(False, CLASSIFIER_DISABLED_REPLY)

        if not await self._reviewer_is_elevated(reviewer_id, guild_id, reviewer_role_ids):
            return ReviewResult(False, REVIEW_DENIED_REPLY)

        not_found = ReviewResult(False, RECORD_NOT_FOUND_REPLY.format(message_id=original_message_id))
        record = self.tracker.find_by_original(original_message_id)
        if record is None:
            return not_found

        async with self.locks.hold(record.author_id):
            if self.tracker.get(record.author_id) is not record:
                return not_found

            logger.tree("Review Action", [
                ("Action", action.name),
                ("Reviewer", str(reviewer_id)),
                ("Author", f"{record.author_name} ({record.author_id})"),
            ], emoji="🧑‍⚖️")

            if action is ReviewAction.TEMP_EXEMPT:
                minutes = self.config.temp_exemption_minutes
                self.classifier.grant_exemption(record.author_id, minutes)
                return ReviewResult(True, f"Temporarily exempted <@{record.author_id}> for {minutes} minutes")

            is_spam = action is ReviewAction.CONFIRM_SPAM
            try:
                await self.classifier.send_feedback(record.original_content, is_spam)
            except ClassifierUnavailable as e:
                logger.warning("Classifier Feedback Failed", [
                    ("Reason", e.reason),
                    ("Message", str(original_message_id)),
                ])
                return ReviewResult(False, f"Classifier update failed ({e.reason})")

            if not is_spam:
                await self.tracker.release(record)

            if record.report_ref is not None:
                verdict = "confirmed spam" if is_spam else "not spam"
                await attempt("edit_message", self.platform.edit_message(record.report_ref, Notice(
                    content=(
                        f"Spam classifier removal reviewed by <@{reviewer_id}>: {verdict}\n"
                        f"Content: {record.original_content}"
                    ),
                )))

            return ReviewResult(True, "Update success")

    # =========================================================================
    # Runtime Host Exceptions
    # =========================================================================

    def approve_host(self, host: str) -> str:
        """Allow links to host (and its subdomains) until revoked or restart."""
        hostname = parse_hostname(host.strip().lower())
        if hostname:
            self.rules.approved_hosts.add(hostname)
        return hostname

    def revoke_host(self, host: str) -> bool:
        hostname = parse_hostname(host.strip().lower())
        if hostname in self.rules.approved_hosts:
            self.rules.approved_hosts.discard(hostname)
            return True
        return False

    @property
    def approved_hosts(self) -> List[str]:
        return sorted(self.rules.approved_hosts)


__all__ = ["ModerationEngine"]
