"""Cached access to the panel, one instance per conversation partition.

Reads go through the partition cache and only successful payloads are
stored. Writes invalidate their resource class before the downstream call so
a read racing the mutation cannot re-cache the pre-mutation state as valid.
"""

from typing import Any, Optional

from qlbot.logging_config import get_logger
from qlbot.services.errors import DownstreamRejected
from qlbot.services.partitioned_cache import PartitionedCache
from qlbot.services.qinglong_client import QinglongClient

logger = get_logger("gateway")

KEY_SEPARATOR = ":"
READ_METHODS = frozenset({"GET"})
WRITE_METHODS = frozenset({"POST", "PUT", "DELETE"})

# Resource classes; every cache key starts with one of these
TASKS = "tasks"
ENVS = "envs"
SUBS = "subs"
DEPS = "deps"
SCRIPTS = "scripts"


def cache_key(resource_class: str, *qualifiers: Any) -> str:
    return KEY_SEPARATOR.join([resource_class, *(str(q) for q in qualifiers)])


def resource_prefix(key: str) -> str:
    return key.split(KEY_SEPARATOR, 1)[0]


def is_success(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("code") == 200


def ensure_ok(payload: Any, fallback: str = "Unknown error") -> Any:
    if not is_success(payload):
        message = payload.get("message") if isinstance(payload, dict) else None
        raise DownstreamRejected(message or fallback)
    return payload


def to_array(payload: Any) -> list:
    """List data of a panel payload; anything unexpected reads as empty."""
    if not is_success(payload):
        return []
    data = payload.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


class CachedGateway:
    def __init__(self, client: QinglongClient, cache: PartitionedCache):
        self.client = client
        self.cache = cache

    async def call(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        cache_key: Optional[str] = None,
        ttl: float = 0,
    ) -> dict:
        method = method.upper()
        if method in WRITE_METHODS:
            if cache_key:
                await self.cache.clear_prefix(resource_prefix(cache_key))
            return await self.client.request(method, endpoint, body)

        if method not in READ_METHODS:
            raise ValueError(f"Unsupported method: {method}")

        if cache_key:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

        result = await self.client.request(method, endpoint, body)

        if cache_key and ttl > 0 and is_success(result):
            await self.cache.set(cache_key, result, ttl)
        return result

    async def invalidate(self, prefix: str = "") -> None:
        await self.cache.clear_prefix(prefix)
