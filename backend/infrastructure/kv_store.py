"""
Key-Value Store
Namespaced key -> string store with optional per-key TTL and prefix listing.

There are no transactions: every read-modify-write done by callers is
best-effort. Two backends exist:
- InMemoryKVStore: process-local dict, used in tests and as the fallback
- SupabaseKVStore: PostgREST table (see infrastructure.supabase_client)
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from infrastructure import clock

logger = logging.getLogger(__name__)


class KVStoreError(Exception):
    """Backend failure while reading or writing the store"""


class KVStore(ABC):
    """Async key-value capability"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        ...


class InMemoryKVStore(KVStore):
    """Dict-backed store. Expired keys are dropped lazily on access."""

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[int]]] = {}

    def _expired(self, expires_at: Optional[int]) -> bool:
        return expires_at is not None and clock.now_ms() >= expires_at

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = clock.now_ms() + ttl_seconds * 1000 if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self, prefix: str = "") -> List[str]:
        keys = []
        for key, (_, expires_at) in list(self._data.items()):
            if self._expired(expires_at):
                del self._data[key]
                continue
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def ttl_of(self, key: str) -> Optional[int]:
        """Remaining TTL in seconds (None = no expiry). Test helper."""
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return max(0, (entry[1] - clock.now_ms()) // 1000)


async def get_json(store: KVStore, key: str) -> Optional[Any]:
    """Read and decode a JSON value; corrupt values are treated as absent"""
    raw = await store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"[KV] Corrupt JSON at {key}, ignoring")
        return None


async def put_json(store: KVStore, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
    await store.put(key, json.dumps(value), ttl_seconds=ttl_seconds)


_store: Optional[KVStore] = None


def get_store() -> KVStore:
    """Get or create the process-wide store (Supabase when configured)"""
    global _store
    if _store is None:
        from config.settings import get_settings
        from infrastructure.supabase_client import SupabaseKVStore

        settings = get_settings()
        if settings.supabase_url and settings.supabase_key:
            _store = SupabaseKVStore(settings.supabase_url, settings.supabase_key, settings.supabase_kv_table)
        else:
            logger.warning("[KV] Missing SUPABASE_URL or SUPABASE_KEY - using in-memory store")
            _store = InMemoryKVStore()
    return _store
