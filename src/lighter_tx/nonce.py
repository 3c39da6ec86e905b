"""Nonce acquisition.

Two nonce sources share one interface:

- ApiNonceSource: one ``nextNonce`` round trip per transaction
- NonceCache: batches fetches into a per-key FIFO queue, refilling in the
  background when it runs low

The cache relies on the event loop's run-to-completion semantics for its
queue updates. It must not be shared across threads.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol

from lighter_tx.api.transaction import TransactionApi
from lighter_tx.exceptions import LighterError, NonceError

logger = logging.getLogger(__name__)

NonceKey = tuple[int, int]  # (account_index, api_key_index)
FetchBatch = Callable[[int, int, int], Awaitable[list[int]]]


class NonceSource(Protocol):
    """Anything that can hand out nonces for an (account, API key) pair."""

    async def get_next_nonce(self, account_index: int, api_key_index: int) -> int:
        ...

    def acknowledge_failure(
        self, account_index: int, api_key_index: int, nonce: Optional[int] = None
    ) -> None:
        ...


class ApiNonceSource:
    """Fetches every nonce from the ledger."""

    def __init__(self, transaction_api: TransactionApi):
        self.transaction_api = transaction_api

    async def get_next_nonce(self, account_index: int, api_key_index: int) -> int:
        result = await self.transaction_api.get_next_nonce(account_index, api_key_index)
        return result.nonce

    async def fetch_batch(self, account_index: int, api_key_index: int, count: int) -> list[int]:
        """Reserve ``count`` consecutive nonces starting at the ledger's next nonce."""
        first = await self.get_next_nonce(account_index, api_key_index)
        return list(range(first, first + count))

    def acknowledge_failure(
        self, account_index: int, api_key_index: int, nonce: Optional[int] = None
    ) -> None:
        # Nothing cached
        return None


@dataclass
class NonceCacheEntry:
    """Pre-fetched nonces for one key."""
    nonces: deque = field(default_factory=deque)
    fetched_at: float = 0.0
    # Highest nonce handed out since the last resync
    high_water: Optional[int] = None
    # Handed out and not yet below the ledger's next nonce; never served again
    in_flight: set = field(default_factory=set)
    # Bumped on resync so refills started earlier are ignored
    generation: int = 0

    def is_stale(self, max_age: float) -> bool:
        return time.monotonic() - self.fetched_at > max_age


class NonceCache:
    """Batched nonce cache with collapsed background refills.

    Example:
        source = ApiNonceSource(transaction_api)
        cache = NonceCache(source.fetch_batch)
        nonce = await cache.get_next_nonce(account_index, api_key_index)
    """

    def __init__(
        self,
        fetch_batch: FetchBatch,
        batch_size: int = 10,
        low_water_mark: int = 2,
        max_age: float = 30.0,
    ):
        """Initialize the cache.

        Args:
            fetch_batch: async (account_index, api_key_index, count) -> nonces
            batch_size: Nonces requested per refill
            low_water_mark: Start a background refill at or below this many
            max_age: Seconds after which a batch is discarded
        """
        if batch_size <= low_water_mark:
            raise ValueError("batch_size must be larger than low_water_mark")
        self._fetch_batch = fetch_batch
        self.batch_size = batch_size
        self.low_water_mark = low_water_mark
        self.max_age = max_age
        self._entries: dict[NonceKey, NonceCacheEntry] = {}
        self._refills: dict[NonceKey, asyncio.Task] = {}
        self._last_fetch = 0.0

    async def get_next_nonce(self, account_index: int, api_key_index: int) -> int:
        key = (account_index, api_key_index)
        entry = self._entries.get(key)
        if entry is not None and entry.nonces and entry.is_stale(self.max_age):
            logger.debug(f"Nonce batch for {key} is stale, discarding {len(entry.nonces)}")
            entry.nonces.clear()

        while True:
            pending = self._refills.get(key)
            if pending is not None:
                await self._await_refill(key, pending)
            entry = self._entries.get(key)
            if entry is not None and entry.nonces:
                break
            self._start_refill(key)

        nonce = entry.nonces.popleft()
        entry.high_water = nonce
        entry.in_flight.add(nonce)

        if len(entry.nonces) <= self.low_water_mark and key not in self._refills:
            self._start_refill(key)

        return nonce

    async def get_next_nonces(self, account_index: int, api_key_index: int, count: int) -> list[int]:
        return [await self.get_next_nonce(account_index, api_key_index) for _ in range(count)]

    def acknowledge_failure(
        self, account_index: int, api_key_index: int, nonce: Optional[int] = None
    ) -> None:
        """Resync with the ledger after a transaction using a cached nonce failed.

        The queue and high-water mark are dropped so the next call refetches
        from the ledger. Nonces still held by other callers stay reserved;
        ``nonce``, when given, is released for reuse.
        """
        entry = self._entries.get((account_index, api_key_index))
        if entry is None:
            return
        entry.nonces.clear()
        entry.high_water = None
        entry.generation += 1
        if nonce is not None:
            entry.in_flight.discard(nonce)
        logger.debug(
            f"Nonce resync for account {account_index} key {api_key_index}, "
            f"{len(entry.in_flight)} still in flight"
        )

    def _start_refill(self, key: NonceKey) -> asyncio.Task:
        task = asyncio.create_task(self._refill(key))
        task.add_done_callback(self._on_refill_done)
        self._refills[key] = task
        return task

    @staticmethod
    def _on_refill_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Nonce refill failed: {exc}")

    async def _await_refill(self, key: NonceKey, task: asyncio.Task) -> None:
        try:
            await task
        except LighterError as e:
            self._discard(key, task)
            if isinstance(e, NonceError):
                raise
            raise NonceError(f"Failed to refresh nonces for {key}: {e.message}") from e
        except Exception as e:
            self._discard(key, task)
            raise NonceError(f"Failed to refresh nonces for {key}: {e}") from e
        if self._refills.get(key) is task:
            del self._refills[key]

    def _discard(self, key: NonceKey, task: asyncio.Task) -> None:
        if self._refills.get(key) is task:
            del self._refills[key]
        entry = self._entries.get(key)
        if entry is not None:
            entry.nonces.clear()

    async def _refill(self, key: NonceKey) -> None:
        account_index, api_key_index = key
        entry = self._entries.setdefault(key, NonceCacheEntry())
        generation = entry.generation
        fetched = await self._fetch_batch(account_index, api_key_index, self.batch_size)

        entry = self._entries.get(key)
        if entry is None or entry.generation != generation:
            logger.debug(f"Dropping nonce batch for {key} fetched before a resync")
            return

        if fetched:
            # Anything below the ledger's next nonce has been consumed
            ledger_next = min(fetched)
            entry.in_flight = {n for n in entry.in_flight if n >= ledger_next}

        floor = entry.high_water
        fresh = sorted(
            n
            for n in set(fetched) | set(entry.nonces)
            if (floor is None or n > floor) and n not in entry.in_flight
        )
        if not fresh:
            raise NonceError(
                f"Nonce source returned no unused nonce for account "
                f"{account_index} key {api_key_index}"
            )

        entry.nonces = deque(fresh)
        entry.fetched_at = time.monotonic()
        self._last_fetch = entry.fetched_at
        logger.info(f"Cached {len(fresh)} nonces for account {account_index} key {api_key_index}")

    async def prewarm(self, account_index: int, api_key_indices: list[int]) -> None:
        """Fill the cache for several API keys up front."""
        keys = [(account_index, k) for k in api_key_indices]
        tasks = [self._refills.get(key) or self._start_refill(key) for key in keys]
        await asyncio.gather(*(self._await_refill(key, task) for key, task in zip(keys, tasks)))

    def clear(self, api_key_index: int, account_index: Optional[int] = None) -> None:
        """Forget cached nonces for one API key (optionally one account)."""
        for key in list(self._entries):
            if key[1] == api_key_index and (account_index is None or key[0] == account_index):
                del self._entries[key]

    def clear_all(self) -> None:
        self._entries.clear()
        self._last_fetch = 0.0

    def stats(self) -> dict[NonceKey, dict]:
        """Cache statistics for monitoring."""
        return {
            key: {
                "count": len(entry.nonces),
                "age": time.monotonic() - entry.fetched_at,
                "high_water": entry.high_water,
                "in_flight": len(entry.in_flight),
            }
            for key, entry in self._entries.items()
            if entry.nonces
        }

    def is_healthy(self) -> bool:
        return time.monotonic() - self._last_fetch < self.max_age * 2
