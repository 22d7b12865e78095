"""
ModGate - Moderation Data Models
================================

Dataclasses and enums shared by the rule pipeline, history, violator
tracker, classifier gateway and dispatcher.

DESIGN:
    The core never touches discord.py objects. Inbound messages arrive as
    InboundMessage snapshots, and everything the bot posts leaves as a
    Notice that the Discord adapter renders into content, embeds and
    buttons.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Union


# =============================================================================
# Actions
# =============================================================================

class ActionKind(Enum):
    """
    What the dispatcher does with a triggered rule.

    Values are priorities: lower wins when several rules trigger.
    """

    KICK = 1
    WARN_CUSTOM = 2
    WARN = 3
    HOLD = 4
    MESSAGE_CLEANUP = 5
    LOG = 6

    @property
    def priority(self) -> int:
        return self.value


class ViolatorState(Enum):
    """Violator state machine positions, also used as flag() results."""

    CLEAN = "clean"
    SOFT_FLAGGED = "soft_flagged"
    ESCALATED = "escalated"
    KICKED = "kicked"
    CLEARED = "cleared"


class ReviewAction(Enum):
    """Reviewer actions on a classifier removal. Values appear in button ids."""

    NOT_SPAM = "notspam"
    CONFIRM_SPAM = "confirmspam"
    TEMP_EXEMPT = "tempexempt"


# =============================================================================
# Messages
# =============================================================================

@dataclass(frozen=True)
class MessageRef:
    """Pointer to a posted message."""
    channel_id: int
    message_id: int


@dataclass(frozen=True)
class InboundMessage:
    """
    Read-only snapshot of a guild message.

    author_role_ids is None when the platform did not deliver member data;
    the engine fetches the member in that case.
    """
    id: int
    guild_id: int
    channel_id: int
    author_id: int
    author_name: str
    content: str
    created_at: datetime
    author_display_name: str = ""
    author_is_bot: bool = False
    author_role_ids: Optional[FrozenSet[int]] = None
    clean_content: str = ""
    mentions_everyone: bool = False
    can_send: bool = True
    in_exempt_thread: bool = False

    @property
    def ref(self) -> MessageRef:
        return MessageRef(self.channel_id, self.id)

    @property
    def jump_url(self) -> str:
        return f"https://discord.com/channels/{self.guild_id}/{self.channel_id}/{self.id}"

    @property
    def text(self) -> str:
        """Cleaned text, falling back to raw content."""
        return self.clean_content or self.content


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded message in a user's sliding window."""
    user_id: int
    guild_id: int
    message_ref: MessageRef
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class MemberInfo:
    """Role snapshot of a guild member."""
    user_id: int
    guild_id: int
    role_ids: FrozenSet[int]
    display_name: str = ""


# =============================================================================
# Notices
# =============================================================================

@dataclass(frozen=True)
class NoticeField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class Notice:
    """
    Platform-agnostic message payload.

    A non-null review_key asks the adapter to attach reviewer buttons
    keyed to that original message id.
    """
    content: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    fields: Tuple[NoticeField, ...] = ()
    color: Optional[int] = None
    thumbnail_url: Optional[str] = None
    footer: Optional[str] = None
    review_key: Optional[int] = None

    @property
    def has_embed(self) -> bool:
        return bool(self.title or self.description or self.fields)


# =============================================================================
# Verdicts & Outcomes
# =============================================================================

@dataclass(frozen=True)
class ClassifierVerdict:
    confidence: float
    model_mtime: Optional[float] = None


@dataclass(frozen=True)
class NotTriggered:
    """A rule that did not fire."""

    triggered = False


@dataclass(frozen=True)
class Triggered:
    """
    A rule that fired.

    action=None means "use the rule's default action". A non-null action
    moves the result into another priority tier without changing its
    position in pipeline order.
    """
    action: Optional[ActionKind] = None
    audit_reason: Optional[str] = None
    user_notice: Optional[Notice] = None
    admin_notice: Optional[Notice] = None
    classifier: Optional[ClassifierVerdict] = None

    triggered = True


Verdict = Union[NotTriggered, Triggered]

NOT_TRIGGERED = NotTriggered()


@dataclass(frozen=True)
class RuleResult:
    """Verdict of one rule for one message."""
    rule_name: str
    default_action: ActionKind
    verdict: Verdict

    @property
    def triggered(self) -> bool:
        return self.verdict.triggered

    @property
    def action(self) -> ActionKind:
        if isinstance(self.verdict, Triggered) and self.verdict.action is not None:
            return self.verdict.action
        return self.default_action


@dataclass(frozen=True)
class RuleOutcome:
    """The single winning rule for a message. Never persisted."""
    triggered: bool
    action: ActionKind
    rule_name: str
    audit_reason: Optional[str] = None
    user_notice: Optional[Notice] = None
    admin_notice: Optional[Notice] = None
    classifier: Optional[ClassifierVerdict] = None

    @classmethod
    def from_result(cls, result: RuleResult) -> "RuleOutcome":
        verdict = result.verdict
        if not isinstance(verdict, Triggered):
            return cls(triggered=False, action=result.default_action, rule_name=result.rule_name)
        return cls(
            triggered=True,
            action=result.action,
            rule_name=result.rule_name,
            audit_reason=verdict.audit_reason,
            user_notice=verdict.user_notice,
            admin_notice=verdict.admin_notice,
            classifier=verdict.classifier,
        )


# =============================================================================
# Violator State
# =============================================================================

@dataclass
class ViolatorRecord:
    """
    Single-slot record for a user awaiting confirmation.

    At most one exists per author_id. Only confirmable records can be
    cleared by reacting to the prompt.
    """
    author_id: int
    guild_id: int
    author_name: str
    author_display_name: str
    original_content: str
    prompt_ref: Optional[MessageRef] = None
    original_message_id: Optional[int] = None
    report_ref: Optional[MessageRef] = None
    violation_count: int = 1
    confirmable: bool = False


@dataclass(frozen=True)
class TemporaryExemption:
    user_id: int
    expires_at_epoch_ms: int

    def is_active(self, now_ms: int) -> bool:
        return now_ms < self.expires_at_epoch_ms


@dataclass(frozen=True)
class ReviewResult:
    """Reply for a reviewer action."""
    ok: bool
    message: str


__all__ = [
    "ActionKind",
    "ViolatorState",
    "ReviewAction",
    "MessageRef",
    "InboundMessage",
    "HistoryEntry",
    "MemberInfo",
    "NoticeField",
    "Notice",
    "ClassifierVerdict",
    "NotTriggered",
    "Triggered",
    "Verdict",
    "NOT_TRIGGERED",
    "RuleResult",
    "RuleOutcome",
    "ViolatorRecord",
    "TemporaryExemption",
    "ReviewResult",
]
