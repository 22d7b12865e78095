"""
ModGate - Moderation Rules
==========================

The nine rule evaluators and the default pipeline order.

DESIGN:
    Each evaluator takes an InboundMessage and returns a Verdict. They
    share a handful of collaborators (history, classifier, platform for
    invite lookups, the runtime host exceptions and the TLD list), so they
    live as methods on one RuleSet instead of free functions.

    Default order (first wins inside a priority tier):
        1. invite_links        KICK
        2. link_gate           HOLD
        3. fuzzy_keywords      WARN
        4. support_requests    WARN
        5. external_classifier WARN_CUSTOM
        6. sensitive_topics    HOLD
        7. duplicates          MESSAGE_CLEANUP
        8. flood               MESSAGE_CLEANUP
        9. misleading_links    LOG
"""

import asyncio
from datetime import timedelta
from typing import FrozenSet, Optional, Set

import aiohttp

from modgate.core.config import Config, EmbedColors, has_elevated_role
from modgate.core.constants import (
    API_TIMEOUT,
    CDN_SPAM_LINK_THRESHOLD,
    FALLBACK_TLDS,
    GUNBUDDY_TEXT,
    GUNBUDDY_TITLE,
    INVITE_KICK_REASON,
    KEYWORD_ROBOT_CHECK_TEXT,
    KICK_MARKER_TOKEN,
    LINK_ROBOT_CHECK_TEXT,
    ROBOT_CHECK_TITLE,
    SPAM_PATTERN_TEXT,
    STOP_THUMBNAIL,
    SUPPORT_FIELDS,
    SUPPORT_TEXT,
    SUPPORT_TITLE,
    TLD_LIST_URL,
    WARNING_THUMBNAIL,
)
from modgate.core.logger import logger
from modgate.moderation import detectors
from modgate.moderation.classifier import ClassifierGateway
from modgate.moderation.errors import ClassifierUnavailable, PlatformOperationFailed
from modgate.moderation.history import MessageHistory
from modgate.moderation.models import (
    NOT_TRIGGERED,
    ActionKind,
    InboundMessage,
    Notice,
    NoticeField,
    Triggered,
    Verdict,
)
from modgate.moderation.pipeline import Rule, RulePipeline
from modgate.moderation.platform import ChatPlatform
from modgate.utils.metrics import metrics


class RuleSet:
    """
    Rule evaluators bound to their shared state.

    Attributes:
        approved_hosts: Hostnames approved at runtime by reviewers.
        tlds: Known top-level domains for the misleading-link rule.
    """

    def __init__(
        self,
        config: Config,
        platform: ChatPlatform,
        history: MessageHistory,
        classifier: ClassifierGateway,
    ) -> None:
        self.config = config
        self.platform = platform
        self.history = history
        self.classifier = classifier
        self.approved_hosts: Set[str] = set()
        self.tlds: FrozenSet[str] = FALLBACK_TLDS

    def build_pipeline(self) -> RulePipeline:
        return RulePipeline([
            Rule("invite_links", self.invite_links, ActionKind.KICK),
            Rule("link_gate", self.link_gate, ActionKind.HOLD),
            Rule("fuzzy_keywords", self.fuzzy_keywords, ActionKind.WARN),
            Rule("support_requests", self.support_requests, ActionKind.WARN),
            Rule("external_classifier", self.external_classifier, ActionKind.WARN_CUSTOM),
            Rule("sensitive_topics", self.sensitive_topics, ActionKind.HOLD),
            Rule("duplicates", self.duplicates, ActionKind.MESSAGE_CLEANUP),
            Rule("flood", self.flood, ActionKind.MESSAGE_CLEANUP),
            Rule("misleading_links", self.misleading_links, ActionKind.LOG),
        ])

    def _is_elevated(self, message: InboundMessage) -> bool:
        return has_elevated_role(message.author_role_ids, self.config)

    # =========================================================================
    # TLD List
    # =========================================================================

    async def load_tlds(self, session: Optional[aiohttp.ClientSession] = None) -> int:
        """
        Fetch the IANA TLD list, keeping the built-in list on failure.

        Returns:
            Number of TLDs in use afterwards.
        """
        owns_session = session is None
        if session is None:
            session = aiohttp.ClientSession()
        try:
            async with session.get(TLD_LIST_URL, timeout=aiohttp.ClientTimeout(total=API_TIMEOUT)) as resp:
                resp.raise_for_status()
                tlds = detectors.parse_tld_list(await resp.text())
            if tlds:
                self.tlds = tlds
            logger.tree("TLD List Loaded", [("Count", str(len(self.tlds)))], emoji="🌐")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to Load TLD List", [
                ("URL", TLD_LIST_URL),
                ("Error", str(e)[:100] or type(e).__name__),
                ("Fallback", f"{len(self.tlds)} built-in TLDs"),
            ])
        finally:
            if owns_session:
                await session.close()
        return len(self.tlds)

    # =========================================================================
    # 1. Invite Links
    # =========================================================================

    async def invite_links(self, message: InboundMessage) -> Verdict:
        """Kick for invites to servers whose name carries a blocklisted word."""
        for code in detectors.extract_invite_codes(message.content):
            try:
                guild_name = await self.platform.resolve_invite(code)
            except PlatformOperationFailed as e:
                logger.warning("Failed to Resolve Invite", [
                    ("Code", code),
                    ("Error", str(e.cause or e)[:100]),
                ])
                continue
            if guild_name and detectors.invite_name_is_blocked(guild_name):
                return Triggered(audit_reason=INVITE_KICK_REASON)
        return NOT_TRIGGERED

    # =========================================================================
    # 2. Link Gate
    # =========================================================================

    async def link_gate(self, message: InboundMessage) -> Verdict:
        """
        Hold links to unknown hosts until the author proves they're human.

        Blocked hosts are reported and removed (kick with the marker token),
        Discord CDN floods match a known spam template, and allowed or
        runtime-approved hosts pass.
        """
        url = detectors.extract_first_url(message.content)
        if url is None:
            return NOT_TRIGGERED
        hostname = detectors.parse_hostname(url)

        if hostname and hostname in self.config.blocked_hosts:
            if self._is_elevated(message):
                return NOT_TRIGGERED
            logger.tree("Blocked URL Posted", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Host", hostname),
            ], emoji="⛔")
            kick = KICK_MARKER_TOKEN in message.content
            return Triggered(
                action=ActionKind.KICK if kick else ActionKind.WARN_CUSTOM,
                audit_reason=f"Posted blocked url {hostname}",
                admin_notice=Notice(
                    content=f"{message.author_name} ({message.author_id}) posted blocked url {url}",
                ),
            )

        if detectors.count_cdn_links(message.content) >= CDN_SPAM_LINK_THRESHOLD:
            return Triggered(
                action=ActionKind.WARN_CUSTOM,
                user_notice=Notice(
                    content=f"Hey, <@{message.author_id}> {SPAM_PATTERN_TEXT}",
                    title="Message Removed",
                    description=SPAM_PATTERN_TEXT,
                    color=EmbedColors.ROBOT_CHECK,
                    thumbnail_url=WARNING_THUMBNAIL,
                ),
            )

        if detectors.host_matches(hostname, self.config.allowed_hosts):
            return NOT_TRIGGERED
        if detectors.host_matches(hostname, self.approved_hosts):
            return NOT_TRIGGERED

        return Triggered(user_notice=Notice(
            content=f"Hey, <@{message.author_id}> If you are a human, react with :+1: to this message",
            title=ROBOT_CHECK_TITLE,
            description=LINK_ROBOT_CHECK_TEXT,
            color=EmbedColors.ROBOT_CHECK,
            thumbnail_url=WARNING_THUMBNAIL,
        ))

    # =========================================================================
    # 3-4. Keyword Rules
    # =========================================================================

    async def fuzzy_keywords(self, message: InboundMessage) -> Verdict:
        if not detectors.has_fuzzy_phrase(detectors.tokenize(message.text)):
            return NOT_TRIGGERED
        return Triggered(user_notice=Notice(
            content=f"Hey <@{message.author_id}>, there are no gun buddies here",
            title=GUNBUDDY_TITLE,
            description=GUNBUDDY_TEXT,
            color=EmbedColors.STOP,
            thumbnail_url=STOP_THUMBNAIL,
        ))

    async def support_requests(self, message: InboundMessage) -> Verdict:
        if not detectors.is_support_request(message.text):
            return NOT_TRIGGERED
        return Triggered(user_notice=Notice(
            content=f"Hey <@{message.author_id}>, There is no game or account support here",
            title=SUPPORT_TITLE,
            description=SUPPORT_TEXT,
            fields=tuple(NoticeField(name, value) for name, value in SUPPORT_FIELDS),
            color=EmbedColors.STOP,
            thumbnail_url=STOP_THUMBNAIL,
        ))

    # =========================================================================
    # 5. External Classifier
    # =========================================================================

    async def external_classifier(self, message: InboundMessage) -> Verdict:
        """
        Score the message with the external classifier.

        Above the delete threshold the message is removed for review; above
        the report threshold reviewers get a log-only report. An unavailable
        classifier abstains and is counted separately from low scores.
        """
        if self._is_elevated(message) or self.classifier.is_exempt(message.author_id):
            return NOT_TRIGGERED

        try:
            verdict = await self.classifier.score(message.content)
        except ClassifierUnavailable as e:
            metrics.increment(f"classifier.unavailable.{e.reason}")
            details = [("Reason", e.reason), ("Message", str(message.id))]
            if e.reason == "disabled":
                logger.debug("Classifier Unavailable", details)
            else:
                logger.warning("Classifier Unavailable", details)
            return NOT_TRIGGERED

        if verdict.confidence > self.config.classifier_delete_threshold:
            return Triggered(
                action=ActionKind.WARN_CUSTOM,
                audit_reason=f"Spam classifier score {verdict.confidence:.3f}",
                classifier=verdict,
            )

        if verdict.confidence > self.config.classifier_report_threshold:
            metrics.increment("classifier.report")
            logger.tree("Potential Spam", [
                ("User", f"{message.author_name} ({message.author_id})"),
                ("Confidence", f"{verdict.confidence:.3f}"),
                ("Message", message.jump_url),
            ], emoji="🤔")
            return Triggered(
                action=ActionKind.LOG,
                admin_notice=Notice(content=(
                    f"Message in <#{message.channel_id}> is potentially spam {message.jump_url} "
                    f"Confidence: {verdict.confidence}\nContent: {message.text}"
                )),
                classifier=verdict,
            )

        metrics.increment("classifier.low_confidence")
        return NOT_TRIGGERED

    # =========================================================================
    # 6. Sensitive Topics
    # =========================================================================

    async def sensitive_topics(self, message: InboundMessage) -> Verdict:
        if not detectors.mentions_crypto(message.content):
            return NOT_TRIGGERED
        return Triggered(user_notice=Notice(
            content=KEYWORD_ROBOT_CHECK_TEXT,
            title=ROBOT_CHECK_TITLE,
            description=KEYWORD_ROBOT_CHECK_TEXT,
            color=EmbedColors.ROBOT_CHECK,
            thumbnail_url=WARNING_THUMBNAIL,
        ))

    # =========================================================================
    # 7-8. Rate Rules
    # =========================================================================

    async def duplicates(self, message: InboundMessage) -> Verdict:
        """Same content repeated within the duplicate window (current message included)."""
        since = message.created_at - timedelta(seconds=self.config.duplicate_window)
        entries = self.history.query(message.author_id, message.guild_id, since)
        count = sum(1 for e in entries if e.content == message.content)
        if count >= self.config.duplicate_threshold:
            return Triggered(audit_reason=f"{count} duplicate messages")
        return NOT_TRIGGERED

    async def flood(self, message: InboundMessage) -> Verdict:
        """Any messages within the flood window (current message included)."""
        since = message.created_at - timedelta(seconds=self.config.flood_window)
        count = len(self.history.query(message.author_id, message.guild_id, since))
        if count >= self.config.flood_threshold:
            return Triggered(audit_reason=f"{count} messages in {self.config.flood_window}s")
        return NOT_TRIGGERED

    # =========================================================================
    # 9. Misleading Links
    # =========================================================================

    async def misleading_links(self, message: InboundMessage) -> Verdict:
        flagged = detectors.find_misleading_links(message.content, self.tlds)
        if not flagged:
            return NOT_TRIGGERED
        report = "\n".join(f"```{link}``` != {label}" for link, label in flagged)
        return Triggered(admin_notice=Notice(content=(
            f"Message with potentially misleading links posted by <@{message.author_id}> "
            f"in <#{message.channel_id}> ({message.jump_url})\n{report}"
        )))


__all__ = ["RuleSet"]
