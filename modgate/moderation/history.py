"""
ModGate - Sliding-Window History
================================

Per-user message log backing the flood and duplicate rules.

DESIGN:
    One ordered list per user, spanning every guild; queries filter by
    guild at read time. There is no index, since the window only ever
    holds a few seconds to minutes of one community's traffic.

    A background sweep drops entries older than the retention horizon
    (2 x the larger window). The sweep sleeps, prunes one user at a time
    under that user's lock, and only then schedules its next run, so a
    slow sweep never overlaps itself.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from modgate.core.logger import logger
from modgate.moderation.models import HistoryEntry
from modgate.utils.async_utils import create_safe_task
from modgate.utils.locks import KeyedLock


class MessageHistory:
    """
    Bounded, per-user record of recent messages.

    Attributes:
        retention: How long entries survive a sweep.
        interval: Delay between sweeps.
    """

    def __init__(
        self,
        retention_seconds: int,
        locks: Optional[KeyedLock] = None,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self.retention = timedelta(seconds=retention_seconds)
        self.interval = interval_seconds if interval_seconds is not None else retention_seconds
        self.locks = locks or KeyedLock()
        self._entries: Dict[int, List[HistoryEntry]] = {}
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Recording & Queries
    # =========================================================================

    def record(self, entry: HistoryEntry) -> HistoryEntry:
        """
        Append an entry to its user's log.

        Timestamps never go backwards within one user's log: an entry older
        than the previous one is stored with the previous timestamp.

        Returns:
            The entry as stored.
        """
        entries = self._entries.setdefault(entry.user_id, [])
        if entries and entry.timestamp < entries[-1].timestamp:
            entry = replace(entry, timestamp=entries[-1].timestamp)
        entries.append(entry)
        return entry

    def query(self, user_id: int, guild_id: int, since: datetime) -> List[HistoryEntry]:
        """Entries for user in guild with timestamp >= since."""
        return [
            e for e in self._entries.get(user_id, ())
            if e.guild_id == guild_id and e.timestamp >= since
        ]

    def remove_guild_entries(
        self,
        user_id: int,
        guild_id: int,
        exclude: Optional[int] = None,
    ) -> List[HistoryEntry]:
        """
        Drop every entry user has in guild.

        Args:
            exclude: Message id that is dropped but not returned (the
                message that triggered the cleanup is deleted separately).

        Returns:
            Dropped entries whose messages should be deleted.
        """
        entries = self._entries.get(user_id)
        if not entries:
            return []

        removed = [e for e in entries if e.guild_id == guild_id]
        remaining = [e for e in entries if e.guild_id != guild_id]
        if remaining:
            self._entries[user_id] = remaining
        else:
            del self._entries[user_id]

        return [e for e in removed if e.message_ref.message_id != exclude]

    def entries_for(self, user_id: int) -> List[HistoryEntry]:
        return list(self._entries.get(user_id, ()))

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())

    # =========================================================================
    # Sweep
    # =========================================================================

    def _prune_user(self, user_id: int, cutoff: datetime) -> int:
        entries = self._entries.get(user_id)
        if entries is None:
            return 0
        kept = [e for e in entries if e.timestamp >= cutoff]
        if kept:
            self._entries[user_id] = kept
        else:
            del self._entries[user_id]
        return len(entries) - len(kept)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Drop entries older than the retention horizon and empty users.

        Running it twice with no new entries changes nothing the second time.

        Returns:
            Number of entries removed.
        """
        cutoff = (now or datetime.now(timezone.utc)) - self.retention
        return sum(self._prune_user(user_id, cutoff) for user_id in list(self._entries))

    async def sweep_locked(self, now: Optional[datetime] = None) -> int:
        """Sweep while holding each user's lock in turn."""
        cutoff = (now or datetime.now(timezone.utc)) - self.retention
        removed = 0
        for user_id in list(self._entries):
            async with self.locks.hold(user_id):
                removed += self._prune_user(user_id, cutoff)
        return removed

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            removed = await self.sweep_locked()
            if removed:
                logger.debug("History Swept", [
                    ("Removed", str(removed)),
                    ("Users Tracked", str(len(self._entries))),
                ])

    def start(self) -> None:
        """Start the background sweep. Calling it again is a no-op."""
        if self._task is not None and not self._task.done():
            return
        self._task = create_safe_task(self._sweep_loop(), "History Sweep")
        logger.tree("History Sweep Started", [
            ("Retention", f"{int(self.retention.total_seconds())}s"),
            ("Interval", f"{self.interval}s"),
        ], emoji="🧹")

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = ["MessageHistory"]
