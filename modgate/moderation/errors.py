"""
ModGate - Moderation Errors
===========================

Exception taxonomy for the moderation core. None of these are retried:
each external call is attempted once and a failure degrades to no
action or a partial action.
"""

from typing import Optional


class ModerationError(Exception):
    """Base class for moderation failures."""


class RuleEvaluationError(ModerationError):
    """A rule evaluator raised. The rule is treated as not triggered."""

    def __init__(self, rule_name: str, cause: BaseException) -> None:
        self.rule_name = rule_name
        self.cause = cause
        super().__init__(f"Rule '{rule_name}' failed: {type(cause).__name__}: {cause}")


class ClassifierUnavailable(ModerationError):
    """
    The classifier abstained.

    reason is one of: disabled, http_<status>, timeout, network, bad_response.
    This is never a low-confidence verdict.
    """

    def __init__(self, reason: str, status: Optional[int] = None) -> None:
        self.reason = reason
        self.status = status
        super().__init__(f"Classifier unavailable ({reason})")


class PlatformOperationFailed(ModerationError):
    """A chat platform call (delete, send, kick, role change...) failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Platform operation '{operation}' failed{detail}")


class MemberNotFound(ModerationError):
    """The member left the guild before an action could be applied."""

    def __init__(self, guild_id: int, user_id: int) -> None:
        self.guild_id = guild_id
        self.user_id = user_id
        super().__init__(f"Member {user_id} not found in guild {guild_id}")


__all__ = [
    "ModerationError",
    "RuleEvaluationError",
    "ClassifierUnavailable",
    "PlatformOperationFailed",
    "MemberNotFound",
]
