"""
Per-Transfer Locks

Two writers on the same transfer must not interleave their
open/seek/write sequences, or one can lose the other's bytes. Each
transfer gets an asyncio.Condition: holding it serializes writers and
offset queries, waiting on it lets an out-of-order chunk sit until the
bytes in front of it arrive.

Entries only live while some task holds or waits on them, so the
registry never needs to be rebuilt after a restart.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    condition: asyncio.Condition
    users: int = 0


class TransferLocks:
    """Registry of per-transfer conditions."""

    def __init__(self):
        self._entries: Dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, transfer_id: str) -> bool:
        entry = self._entries.get(transfer_id)
        return entry is not None and entry.condition.locked()

    @asynccontextmanager
    async def hold(self, transfer_id: str) -> AsyncIterator[asyncio.Condition]:
        """
        Hold the transfer's lock for the duration of the block.

        Waiters are woken when the block exits, whether it succeeded or not.
        """
        entry = self._entries.get(transfer_id)
        if entry is None:
            entry = self._entries[transfer_id] = _LockEntry(asyncio.Condition())
        entry.users += 1

        try:
            async with entry.condition:
                try:
                    yield entry.condition
                finally:
                    entry.condition.notify_all()
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[transfer_id]

    @staticmethod
    async def wait_until(condition: asyncio.Condition,
                         check: Callable[[], Awaitable[bool]],
                         timeout: float) -> bool:
        """
        Wait on a held condition until check() passes or timeout expires.

        The lock is released while waiting and held again on return.

        Returns:
            True if check() passed, False on timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while not await check():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(condition.wait(), remaining)
            except asyncio.TimeoutError:
                return await check()

        return True
