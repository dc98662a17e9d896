"""
Per-wallet mutual exclusion.

A process-wide registry hands out one ``asyncio.Lock`` per tenant wallet.
The registry starts empty and an entry disappears as soon as no task holds
or waits on its lock. Multi-instance deployments additionally rely on the
``SELECT ... FOR UPDATE`` row lock taken inside the critical section.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class WalletLockRegistry:
    """Registry of per-tenant wallet locks."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        """Serialize wallet mutations for ``tenant_id``."""
        lock = self._lock_for(tenant_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, tenant_id: str) -> bool:
        lock = self._locks.get(tenant_id)
        return lock is not None and lock.locked()


# Global registry instance
wallet_locks = WalletLockRegistry()


__all__ = ["WalletLockRegistry", "wallet_locks"]
