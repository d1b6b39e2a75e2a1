"""
Per-user serialization of message processing.

Messenger can deliver several events for the same user while an earlier
reply is still being generated. The gate makes sure a user's messages are
processed one at a time, in arrival order, while different users proceed
concurrently.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, TypeVar

from logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ConversationGate:
    """
    Runs at most one task per user at a time.

    Each user with work in flight has an entry holding an asyncio.Lock and
    the number of callers using it (running or waiting). asyncio.Lock wakes
    waiters in FIFO order, so queued messages resume in arrival order. The
    entry is removed when its last caller leaves, whether the task succeeded
    or failed.

    All state is touched from the event loop thread only.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._callers: Dict[str, int] = {}

    async def run_exclusive(self, user_id: str, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run `task` once no other task for `user_id` is running.

        Args:
            user_id: Identity whose messages must not interleave
            task: Zero-argument coroutine function

        Returns:
            Whatever the task returns; its exception propagates to this caller only
        """
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._callers[user_id] = self._callers.get(user_id, 0) + 1

        if lock.locked():
            logger.info(
                "User is already being processed, queuing request",
                user_id=user_id,
                waiting=self._callers[user_id] - 1
            )

        try:
            async with lock:
                return await task()
        finally:
            self._release(user_id)

    def _release(self, user_id: str) -> None:
        remaining = self._callers.get(user_id, 1) - 1
        if remaining <= 0:
            self._callers.pop(user_id, None)
            self._locks.pop(user_id, None)
        else:
            self._callers[user_id] = remaining

    def is_busy(self, user_id: str) -> bool:
        """True while a task for this user is running."""
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def pending_count(self, user_id: str) -> int:
        """Callers for this user that are running or waiting."""
        return self._callers.get(user_id, 0)

    def active_users(self) -> List[str]:
        return list(self._locks)

    def __len__(self) -> int:
        return len(self._locks)

    async def drain(self) -> None:
        """Wait until every user queued at call time has been processed."""
        locks = list(self._locks.values())
        if locks:
            logger.info(f"Waiting for {len(locks)} active users to complete")
        for lock in locks:
            async with lock:
                pass
