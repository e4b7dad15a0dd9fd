import time
from typing import Any, Callable, Optional

from qlbot.logging_config import get_logger
from qlbot.services.cache_store import CacheStore

logger = get_logger("partitioned_cache")


def chat_partition(chat_id: int | str) -> str:
    return f"chat:{chat_id}"


class PartitionedCache:
    """TTL key-value view of one partition of a CacheStore.

    Best effort on every path: a store failure reads as a miss and writes
    become a logged no-op, because a cold cache only costs latency.
    """

    def __init__(self, store: CacheStore, partition: str, clock: Callable[[], float] = time.time):
        self.store = store
        self.partition = partition
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        result = await self.store.get(self.partition, key)
        if not result.ok:
            logger.warning(f"Cache get degraded to miss: {key}", extra={"context": {"error": result.error}})
        entry = result.unwrap_or(None)
        if entry is None or self._clock() >= entry.expires_at:
            logger.debug(f"Cache MISS: {self.partition} {key}")
            return None
        logger.debug(f"Cache HIT: {self.partition} {key}")
        return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        result = await self.store.set(self.partition, key, value, self._clock() + ttl)
        if not result.ok:
            logger.warning(f"Cache set skipped: {key}", extra={"context": {"error": result.error}})
            return
        logger.debug(f"Cache SET: {self.partition} {key} ttl={ttl:g}")

    async def delete(self, key: str) -> None:
        result = await self.store.delete(self.partition, key)
        if not result.ok:
            logger.warning(f"Cache delete skipped: {key}", extra={"context": {"error": result.error}})

    async def clear_prefix(self, prefix: str = "") -> None:
        result = await self.store.clear_prefix(self.partition, prefix)
        if not result.ok:
            logger.warning(
                f"Cache clear skipped: {prefix or 'all'}", extra={"context": {"error": result.error}}
            )
            return
        logger.debug(f"Cache CLEAR: {self.partition} {prefix or 'all'} removed={result.value}")
