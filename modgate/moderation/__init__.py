"""
ModGate - Moderation Core
=========================

Platform-independent moderation: rule pipeline, sliding-window history,
violator state machine, classifier gateway and action dispatcher, wired
together by ModerationEngine.
"""

from modgate.moderation.engine import ModerationEngine
from modgate.moderation.models import ActionKind, InboundMessage, Notice, ReviewAction

__all__ = [
    "ModerationEngine",
    "ActionKind",
    "InboundMessage",
    "Notice",
    "ReviewAction",
]
