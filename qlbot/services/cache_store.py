"""Storage backends for the partitioned TTL cache.

Every operation returns a Result instead of raising so PartitionedCache can
degrade to a miss or a no-op. Backends do not interpret expiry on reads; they
hand back the stored deadline and let the caller compare against its clock.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from qlbot.logging_config import get_logger
from qlbot.models import CacheEntry
from qlbot.services.result import STORE_UNAVAILABLE, Result

logger = get_logger("cache_store")


@dataclass(frozen=True)
class StoredEntry:
    value: Any
    expires_at: float


class CacheStore(Protocol):
    async def get(self, partition: str, key: str) -> Result[Optional[StoredEntry]]: ...

    async def set(self, partition: str, key: str, value: Any, expires_at: float) -> Result[None]: ...

    async def delete(self, partition: str, key: str) -> Result[None]: ...

    async def clear_prefix(self, partition: str, prefix: str) -> Result[int]: ...

    async def purge_expired(self, now: float) -> Result[int]: ...


class InMemoryCacheStore:
    """Process-local store. Also the fake used by tests."""

    def __init__(self):
        self._partitions: dict[str, dict[str, StoredEntry]] = {}
        self._lock = asyncio.Lock()

    async def get(self, partition: str, key: str) -> Result[Optional[StoredEntry]]:
        async with self._lock:
            return Result.success(self._partitions.get(partition, {}).get(key))

    async def set(self, partition: str, key: str, value: Any, expires_at: float) -> Result[None]:
        async with self._lock:
            self._partitions.setdefault(partition, {})[key] = StoredEntry(value=value, expires_at=expires_at)
        return Result.success()

    async def delete(self, partition: str, key: str) -> Result[None]:
        async with self._lock:
            self._partitions.get(partition, {}).pop(key, None)
        return Result.success()

    async def clear_prefix(self, partition: str, prefix: str) -> Result[int]:
        async with self._lock:
            entries = self._partitions.get(partition)
            if not entries:
                return Result.success(0)
            doomed = [key for key in entries if key.startswith(prefix)]
            for key in doomed:
                del entries[key]
            if not entries:
                del self._partitions[partition]
        return Result.success(len(doomed))

    async def purge_expired(self, now: float) -> Result[int]:
        removed = 0
        async with self._lock:
            for partition in list(self._partitions):
                entries = self._partitions[partition]
                for key in [k for k, entry in entries.items() if entry.expires_at <= now]:
                    del entries[key]
                    removed += 1
                if not entries:
                    del self._partitions[partition]
        return Result.success(removed)


class SqlCacheStore:
    """Durable store backed by the cache_entries table.

    SQLAlchemy sessions are blocking, so each operation runs in a worker thread.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def _run(self, operation, *args) -> Result:
        try:
            value = await asyncio.to_thread(self._in_session, operation, *args)
        except Exception as e:
            logger.error(
                "Cache store operation failed",
                extra={"context": {"operation": operation.__name__, "error": str(e)}},
            )
            return Result.failure(str(e), STORE_UNAVAILABLE)
        return Result.success(value)

    def _in_session(self, operation, *args):
        db: Session = self._session_factory()
        try:
            value = operation(db, *args)
            db.commit()
            return value
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _get(db: Session, partition: str, key: str) -> Optional[StoredEntry]:
        row = db.get(CacheEntry, (partition, key))
        if row is None:
            return None
        return StoredEntry(value=row.payload, expires_at=row.expires_at)

    @staticmethod
    def _set(db: Session, partition: str, key: str, value: Any, expires_at: float) -> None:
        db.merge(CacheEntry(partition_key=partition, cache_key=key, payload=value, expires_at=expires_at))

    @staticmethod
    def _delete(db: Session, partition: str, key: str) -> None:
        db.query(CacheEntry).filter(CacheEntry.partition_key == partition, CacheEntry.cache_key == key).delete(
            synchronize_session=False
        )

    @staticmethod
    def _clear_prefix(db: Session, partition: str, prefix: str) -> int:
        query = db.query(CacheEntry).filter(CacheEntry.partition_key == partition)
        if prefix:
            query = query.filter(CacheEntry.cache_key.startswith(prefix, autoescape=True))
        return query.delete(synchronize_session=False)

    @staticmethod
    def _purge_expired(db: Session, now: float) -> int:
        return db.query(CacheEntry).filter(CacheEntry.expires_at <= now).delete(synchronize_session=False)

    async def get(self, partition: str, key: str) -> Result[Optional[StoredEntry]]:
        return await self._run(self._get, partition, key)

    async def set(self, partition: str, key: str, value: Any, expires_at: float) -> Result[None]:
        return await self._run(self._set, partition, key, value, expires_at)

    async def delete(self, partition: str, key: str) -> Result[None]:
        return await self._run(self._delete, partition, key)

    async def clear_prefix(self, partition: str, prefix: str) -> Result[int]:
        return await self._run(self._clear_prefix, partition, prefix)

    async def purge_expired(self, now: float) -> Result[int]:
        return await self._run(self._purge_expired, now)
