from __future__ import annotations

from datetime import datetime
from typing import Protocol

from authserver.core.clock import Clock, SystemClock


class TokenStore(Protocol):
    async def add(
        self, handle_hash: str, protected_ticket: str, expires_at: datetime | None = None
    ) -> None: ...
    async def consume(self, handle_hash: str) -> str | None: ...


class InMemoryTokenStore:
    """Single-use storage for protected tickets, keyed by handle hash.

    Entries past their expiry are dropped, mimicking a Redis SETEX:
    every ``add`` sweeps expired entries and ``consume`` refuses one.

    Per-process only; a multi-instance deployment needs a shared store
    with the same add/consume contract.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        # handle hash -> (protected ticket, expiry or None for no expiry)
        self._by_handle_hash: dict[str, tuple[str, datetime | None]] = {}

    def __len__(self) -> int:
        return len(self._by_handle_hash)

    async def add(
        self, handle_hash: str, protected_ticket: str, expires_at: datetime | None = None
    ) -> None:
        self._evict_expired(self._clock.utcnow())
        self._by_handle_hash[handle_hash] = (protected_ticket, expires_at)

    async def consume(self, handle_hash: str) -> str | None:
        """Remove and return the entry.  None if unknown, used or expired.

        dict.pop does not yield to the event loop, so two concurrent
        redemptions cannot both succeed.
        """
        entry = self._by_handle_hash.pop(handle_hash, None)
        if entry is None:
            return None
        protected_ticket, expires_at = entry
        if expires_at is not None and expires_at <= self._clock.utcnow():
            return None
        return protected_ticket

    def _evict_expired(self, now: datetime) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._by_handle_hash.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._by_handle_hash[key]
