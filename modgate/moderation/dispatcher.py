"""
ModGate - Action Dispatcher
===========================

Turns the winning RuleOutcome into platform calls.

DESIGN:
    The dispatcher only sequences. Every platform call goes through
    attempt(), so a failed delete never prevents the kick that follows it
    (and vice versa). Nothing is retried or rolled back.

    | Action            | Steps                                                  |
    |-------------------|--------------------------------------------------------|
    | KICK              | delete message, kick, drop any violator record         |
    | WARN_CUSTOM (clf) | delete, escalate live record, report, notice, record   |
    | WARN_CUSTOM       | delete, user notice                                    |
    | WARN / HOLD       | violator flag (HOLD is confirmable by reaction)        |
    | MESSAGE_CLEANUP   | violator flag, clears history on kick                  |
    | LOG               | nothing, reports were posted during evaluation         |

    A classifier removal that loses the tie to another rule still runs
    through apply_classifier_removal() after the winner is dispatched.
"""

from typing import Optional

from modgate.core.config import Config, EmbedColors
from modgate.core.constants import (
    CLASSIFIER_REMOVAL_TEXT,
    CLASSIFIER_REMOVAL_TITLE,
    STOP_SPAMMING_TEXT,
    WARNING_THUMBNAIL,
)
from modgate.core.logger import logger
from modgate.moderation.models import (
    ActionKind,
    InboundMessage,
    MessageRef,
    Notice,
    NoticeField,
    RuleOutcome,
    ViolatorState,
)
from modgate.moderation.platform import ChatPlatform, attempt
from modgate.moderation.violators import ViolatorTracker
from modgate.utils.metrics import metrics


class ActionDispatcher:
    """Executes one resolved action per message."""

    def __init__(self, platform: ChatPlatform, tracker: ViolatorTracker, config: Config) -> None:
        self.platform = platform
        self.tracker = tracker
        self.config = config

    async def dispatch(self, outcome: RuleOutcome, message: InboundMessage) -> None:
        if not outcome.triggered:
            return

        metrics.increment(f"dispatch.{outcome.action.name.lower()}")
        logger.tree("Action Dispatched", [
            ("User", f"{message.author_name} ({message.author_id})"),
            ("Rule", outcome.rule_name),
            ("Action", outcome.action.name),
            ("Message", message.jump_url),
        ], emoji="⚖️")

        if outcome.action is ActionKind.KICK:
            await self._kick(outcome, message)
        elif outcome.action is ActionKind.WARN_CUSTOM:
            if outcome.classifier is not None:
                await self._classifier_removal(outcome, message)
            else:
                await self._warn_custom(outcome, message)
        elif outcome.action is ActionKind.WARN:
            await self.tracker.flag(message, outcome.user_notice or self._default_notice(message), confirmable=False)
        elif outcome.action is ActionKind.HOLD:
            await self.tracker.flag(message, outcome.user_notice or self._default_notice(message), confirmable=True)
        elif outcome.action is ActionKind.MESSAGE_CLEANUP:
            await self.tracker.flag(
                message,
                self._default_notice(message),
                confirmable=False,
                clear_history_on_kick=True,
            )

    @staticmethod
    def _default_notice(message: InboundMessage) -> Notice:
        return Notice(content=STOP_SPAMMING_TEXT.format(user_id=message.author_id))

    # =========================================================================
    # Actions
    # =========================================================================

    async def _kick(self, outcome: RuleOutcome, message: InboundMessage) -> None:
        await attempt("delete_message", self.platform.delete_message(message.ref))
        await attempt(
            "kick_member",
            self.platform.kick_member(
                message.guild_id,
                message.author_id,
                outcome.audit_reason or f"Triggered {outcome.rule_name}",
            ),
        )
        await self.tracker.discard(message.author_id)

    async def _warn_custom(self, outcome: RuleOutcome, message: InboundMessage) -> None:
        await attempt("delete_message", self.platform.delete_message(message.ref))
        if outcome.user_notice is not None:
            await attempt("send_message", self.platform.send_message(message.channel_id, outcome.user_notice))

    # =========================================================================
    # Classifier Removals
    # =========================================================================

    async def apply_classifier_removal(
        self,
        outcome: RuleOutcome,
        message: InboundMessage,
        author_kicked: bool = False,
    ) -> None:
        """
        Run a classifier removal whose rule did not win dispatch.

        When the author was already kicked only the report is posted, and
        without reviewer buttons since no record is left to review.
        """
        metrics.increment("dispatch.classifier_followup")
        if author_kicked:
            await self._classifier_report(message, reviewable=False)
            return
        await self._classifier_removal(outcome, message)

    async def _classifier_report(self, message: InboundMessage, reviewable: bool) -> Optional[MessageRef]:
        if not self.config.report_channel_id:
            return None
        return await attempt("send_message", self.platform.send_message(
            self.config.report_channel_id,
            Notice(
                content=(
                    "Spam classifier removal threshold exceeded, removing message\n"
                    f"Content: {message.text}"
                ),
                review_key=message.id if reviewable else None,
            ),
        ))

    async def _classifier_removal(self, outcome: RuleOutcome, message: InboundMessage) -> None:
        verdict = outcome.classifier
        await attempt("delete_message", self.platform.delete_message(message.ref))

        record = self.tracker.get(message.author_id)
        if record is not None and await self.tracker.escalate(record, message) is ViolatorState.KICKED:
            await self._classifier_report(message, reviewable=False)
            return

        report_ref = await self._classifier_report(message, reviewable=True)

        fields = ()
        if report_ref is not None:
            report_url = (
                f"https://discord.com/channels/{message.guild_id}/"
                f"{report_ref.channel_id}/{report_ref.message_id}"
            )
            fields = (NoticeField("\u00a0", f"[Reviewer Info]({report_url})", inline=False),)

        removal = Notice(
            title=CLASSIFIER_REMOVAL_TITLE,
            description=CLASSIFIER_REMOVAL_TEXT.format(user_id=message.author_id),
            fields=fields,
            color=EmbedColors.ROBOT_CHECK,
            thumbnail_url=WARNING_THUMBNAIL,
            footer=(
                f"v:{verdict.model_mtime} | Message scored {verdict.confidence:#.5g} "
                f"| Message ID: {message.id}"
            ),
        )
        prompt_ref = await attempt("send_message", self.platform.send_message(message.channel_id, removal))

        await self.tracker.register_classifier_removal(message, prompt_ref, report_ref)


__all__ = ["ActionDispatcher"]
