"""
Process-local response cache with TTL and single-flight fetches.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CacheEntry:
    __slots__ = ("value", "inserted_at")

    def __init__(self, value: Any, inserted_at: float):
        self.value = value
        self.inserted_at = inserted_at


class ResponseCache:
    """
    Key -> CacheEntry mapping.

    An entry is served while now - inserted_at < ttl and dropped on the first
    read after that. get_or_fetch() guarantees at most one fetch in flight per
    key; every concurrent caller receives the same outcome.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, key: str, ttl: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.inserted_at >= ttl:
            logger.debug(f"Cache expired for {key}")
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, ttl: float, default: Any = None) -> Any:
        entry = self.lookup(key, ttl)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value, self._clock())

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_fetch(self, key: str, ttl: float, fetch: Callable[[], Awaitable[Any]]) -> Any:
        while True:
            entry = self.lookup(key, ttl)
            if entry is not None:
                logger.debug(f"Cache hit for {key}")
                return entry.value

            pending = self._inflight.get(key)
            if pending is None:
                break

            # Joining another caller's fetch; our own cancellation still raises here.
            await asyncio.wait([pending])
            if pending.cancelled():
                # The producer was cancelled, so race to become the next one.
                continue
            return pending.result()

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure does not warn on GC.
            future.exception()
            raise
        else:
            self.set(key, value)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)
