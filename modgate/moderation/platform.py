"""
ModGate - Chat Platform Port
============================

The narrow async interface the moderation core uses to act on the chat
platform, plus the fault-isolation helper every caller goes through.

DESIGN:
    The core depends only on ChatPlatform. DiscordPlatform implements it
    with discord.py, and the test suite implements it with a recorder.
    Implementations raise MemberNotFound for departed members and
    PlatformOperationFailed for everything else that goes wrong.
"""

from typing import Any, Awaitable, Optional, Protocol

from modgate.core.logger import logger
from modgate.moderation.errors import MemberNotFound, PlatformOperationFailed
from modgate.moderation.models import MemberInfo, MessageRef, Notice
from modgate.utils.metrics import metrics


class ChatPlatform(Protocol):
    """Operations the moderation core performs on the chat platform."""

    async def delete_message(self, ref: MessageRef) -> None: ...

    async def send_message(self, channel_id: int, notice: Notice) -> MessageRef: ...

    async def edit_message(self, ref: MessageRef, notice: Notice) -> None: ...

    async def add_reaction(self, ref: MessageRef, emoji: str) -> None: ...

    async def kick_member(self, guild_id: int, user_id: int, reason: str) -> None: ...

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None: ...

    async def remove_role(self, guild_id: int, user_id: int, role_id: int) -> None: ...

    async def resolve_invite(self, code: str) -> Optional[str]: ...

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberInfo: ...

    async def send_direct_message(self, user_id: int, notice: Notice) -> bool: ...


# =============================================================================
# Fault Isolation
# =============================================================================

async def attempt(operation: str, call: Awaitable[Any], default: Any = None) -> Any:
    """
    Await one platform call, logging and swallowing its failure.

    Each platform call is attempted exactly once. A failure never aborts
    the caller's remaining steps and never rolls back earlier ones.

    Args:
        operation: Name used in logs and the platform.<operation>.failed counter.
        call: The awaitable platform call.
        default: Returned when the call fails.
    """
    try:
        return await call
    except MemberNotFound as e:
        metrics.increment(f"platform.{operation}.failed")
        logger.warning("Member Not Found", [
            ("Operation", operation),
            ("User", str(e.user_id)),
            ("Guild", str(e.guild_id)),
        ])
    except PlatformOperationFailed as e:
        metrics.increment(f"platform.{operation}.failed")
        logger.warning("Platform Operation Failed", [
            ("Operation", operation),
            ("Error", str(e.cause or e)[:100]),
        ])
    except Exception as e:
        metrics.increment(f"platform.{operation}.failed")
        logger.error("Unexpected Platform Error", [
            ("Operation", operation),
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:200]),
        ])
    return default


__all__ = ["ChatPlatform", "attempt"]
