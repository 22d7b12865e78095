"""
ModGate - Test Fixtures
=======================

Shared fixtures for all tests.

FakePlatform records every ChatPlatform call instead of talking to
Discord, and FakeSession stands in for aiohttp.ClientSession when the
classifier or TLD loader is exercised.
"""

import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set
from unittest.mock import MagicMock

import aiohttp
import pytest

# Set up test environment before importing modules
os.environ.setdefault("MODGATE_LOG_DIR", tempfile.mkdtemp(prefix="modgate-logs-"))

from modgate.core.config import Config  # noqa: E402
from modgate.moderation.classifier import ClassifierGateway  # noqa: E402
from modgate.moderation.errors import MemberNotFound, PlatformOperationFailed  # noqa: E402
from modgate.moderation.models import InboundMessage, MemberInfo, MessageRef, Notice  # noqa: E402
from modgate.utils.metrics import metrics  # noqa: E402


# =============================================================================
# Test IDs
# =============================================================================

GUILD_ID = 1000
CHANNEL_ID = 2000
REPORT_CHANNEL_ID = 3000
TRUSTED_ROLE_ID = 4000
ELEVATED_ROLE_ID = 5000
USER_ID = 6000
OTHER_USER_ID = 6001
MODERATOR_ID = 6002

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# A member with no assigned roles still carries the guild default role
DEFAULT_ROLES = frozenset({GUILD_ID})
ELEVATED_ROLES = frozenset({GUILD_ID, ELEVATED_ROLE_ID})


# =============================================================================
# Fake Chat Platform
# =============================================================================

class FakePlatform:
    """
    ChatPlatform that records calls.

    Attributes:
        calls: (operation, *args) tuples in call order.
        members: Members returned by fetch_member; anyone else is MemberNotFound.
        invites: Invite code -> server name.
        fail: Operation names that raise PlatformOperationFailed.
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.members: Dict[int, MemberInfo] = {}
        self.invites: Dict[str, Optional[str]] = {}
        self.fail: Set[str] = set()
        self._ids = itertools.count(900_000)

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation,) + args)
        if operation in self.fail:
            raise PlatformOperationFailed(operation)

    def calls_named(self, operation: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def sent_to(self, channel_id: int) -> List[Notice]:
        return [c[2] for c in self.calls_named("send_message") if c[1] == channel_id]

    def add_member(self, user_id: int, role_ids=DEFAULT_ROLES) -> None:
        self.members[user_id] = MemberInfo(user_id, GUILD_ID, frozenset(role_ids))

    async def delete_message(self, ref: MessageRef) -> None:
        self._record("delete_message", ref)

    async def send_message(self, channel_id: int, notice: Notice) -> MessageRef:
        self._record("send_message", channel_id, notice)
        return MessageRef(channel_id, next(self._ids))

    async def edit_message(self, ref: MessageRef, notice: Notice) -> None:
        self._record("edit_message", ref, notice)

    async def add_reaction(self, ref: MessageRef, emoji: str) -> None:
        self._record("add_reaction", ref, emoji)

    async def kick_member(self, guild_id: int, user_id: int, reason: str) -> None:
        self._record("kick_member", guild_id, user_id, reason)

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        self._record("add_role", guild_id, user_id, role_id)

    async def remove_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        self._record("remove_role", guild_id, user_id, role_id)

    async def resolve_invite(self, code: str) -> Optional[str]:
        self._record("resolve_invite", code)
        return self.invites.get(code)

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberInfo:
        self._record("fetch_member", guild_id, user_id)
        if user_id not in self.members:
            raise MemberNotFound(guild_id, user_id)
        return self.members[user_id]

    async def send_direct_message(self, user_id: int, notice: Notice) -> bool:
        self._record("send_direct_message", user_id, notice)
        return True


# =============================================================================
# Fake aiohttp Session
# =============================================================================

class FakeResponse:
    """Minimal aiohttp response."""

    def __init__(self, status: int = 200, payload: Any = None, text: str = "") -> None:
        self.status = status
        self.payload = payload
        self._text = text

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def text(self) -> str:
        return self._text

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(MagicMock(), (), status=self.status)


class _RequestContext:
    def __init__(self, outcome: Any) -> None:
        self._outcome = outcome

    async def __aenter__(self) -> FakeResponse:
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """
    aiohttp.ClientSession stand-in.

    Each request consumes the next queued outcome (a FakeResponse or an
    exception to raise); the last one repeats once the queue is drained.
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes) or [FakeResponse(200, {})]
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def _next(self) -> Any:
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]

    def request(self, method: str, url: str, json: Any = None, timeout: Any = None) -> _RequestContext:
        self.requests.append({"method": method, "url": url, "json": json})
        return _RequestContext(self._next())

    def get(self, url: str, timeout: Any = None) -> _RequestContext:
        return self.request("GET", url, timeout=timeout)

    async def close(self) -> None:
        self.closed = True


def scored(confidence: float, mtime: float = 1700000000.0) -> FakeResponse:
    return FakeResponse(200, {"spam_confidence": confidence, "mtime": mtime})


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_metrics():
    """Each test starts with empty counters."""
    metrics.clear()
    yield
    metrics.clear()


@pytest.fixture
def config():
    """Config with every optional channel and role set."""
    return Config(
        discord_token="test-token",
        guild_id=GUILD_ID,
        report_channel_id=REPORT_CHANNEL_ID,
        trusted_role_id=TRUSTED_ROLE_ID,
        elevated_role_ids={ELEVATED_ROLE_ID},
        allowed_hosts={"github.com", "youtube.com"},
        blocked_hosts={"evil.example"},
    )


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def disabled_classifier():
    return ClassifierGateway(url=None, enabled=False)


@pytest.fixture
def make_message():
    """
    Factory for InboundMessage snapshots.

    Message ids are unique per test. `at` is seconds after BASE_TIME.
    """
    ids = itertools.count(1)

    def _make(
        content: str = "hello there",
        *,
        author_id: int = USER_ID,
        role_ids=DEFAULT_ROLES,
        at: float = 0,
        message_id: Optional[int] = None,
        **kwargs: Any,
    ) -> InboundMessage:
        return InboundMessage(
            id=message_id if message_id is not None else next(ids),
            guild_id=kwargs.pop("guild_id", GUILD_ID),
            channel_id=kwargs.pop("channel_id", CHANNEL_ID),
            author_id=author_id,
            author_name=kwargs.pop("author_name", f"user{author_id}"),
            content=content,
            created_at=BASE_TIME + timedelta(seconds=at),
            author_role_ids=role_ids,
            **kwargs,
        )

    return _make
