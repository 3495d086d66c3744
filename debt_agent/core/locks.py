"""
Per-debt mutual exclusion.

Every read-modify-write of a debt record (reminder counters, status,
next reminder date) runs under that debt's lock. Outbound sends and text
generation never hold the lock; instead a send claims the debt so a second
concurrent send for the same debt is refused.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Set

import structlog

logger = structlog.get_logger(__name__)


class DebtLockManager:
    """Registry of asyncio locks and in-flight send claims keyed by debt id."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per debt. A lock with users is never pruned.
        self._users: Dict[str, int] = {}
        self._in_flight: Set[str] = set()

    def _get_lock(self, debt_id: str) -> asyncio.Lock:
        lock = self._locks.get(debt_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[debt_id] = lock
        return lock

    @asynccontextmanager
    async def lock(self, debt_id: str) -> AsyncIterator[None]:
        """Hold the debt's lock for the duration of a state commit."""
        lock = self._get_lock(debt_id)
        self._users[debt_id] = self._users.get(debt_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[debt_id] - 1
            if remaining:
                self._users[debt_id] = remaining
            else:
                del self._users[debt_id]

    def try_claim(self, debt_id: str) -> bool:
        """
        Claim a debt for an outbound send.

        Returns False when another send for the same debt is in flight.
        """
        if debt_id in self._in_flight:
            logger.info("Debt already has a send in flight", debt_id=debt_id)
            return False
        self._in_flight.add(debt_id)
        return True

    def release(self, debt_id: str) -> None:
        self._in_flight.discard(debt_id)

    def is_claimed(self, debt_id: str) -> bool:
        return debt_id in self._in_flight

    def prune(self) -> int:
        """Drop locks nobody holds or waits on. Returns the number removed."""
        idle = [
            debt_id
            for debt_id in self._locks
            if debt_id not in self._users and debt_id not in self._in_flight
        ]
        for debt_id in idle:
            del self._locks[debt_id]
        return len(idle)

    def __len__(self) -> int:
        return len(self._locks)
