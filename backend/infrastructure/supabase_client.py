"""
Supabase KV Backend
Persistent key-value storage for treasury state, policies and indices.

Uses REST API directly via httpx (no native dependencies).

Table (default name: treasury_kv):
    key            text primary key
    value          text not null
    expires_at_ms  bigint null      -- unix ms; null = no expiry
"""

import logging
import time
from typing import List, Optional

import httpx

from infrastructure import clock
from infrastructure.kv_store import KVStore, KVStoreError
from infrastructure.metrics import metrics

logger = logging.getLogger(__name__)


class SupabaseKVStore(KVStore):
    """
    KV store on a Supabase PostgREST table.

    Expired rows are treated as absent and deleted lazily on read.
    """

    def __init__(self, url: str, key: str, table: str = "treasury_kv", timeout: float = 15.0):
        self.url = url.rstrip("/")
        self.key = key
        self.table = table
        self.timeout = timeout
        logger.info(f"[Supabase] KV store configured for {self.url[:40]}... table={table}")

    def _headers(self, upsert: bool = False) -> dict:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if upsert:
            headers["Prefer"] = "return=representation,resolution=merge-duplicates"
        return headers

    async def _request(
        self,
        method: str,
        params: dict = None,
        data: dict = None,
        upsert: bool = False
    ) -> List[dict]:
        """Make async request to Supabase REST API; raises KVStoreError on failure"""
        url = f"{self.url}/rest/v1/{self.table}"
        start_time = time.time()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(
                    method,
                    url,
                    headers=self._headers(upsert=upsert),
                    params=params,
                    json=data,
                )
        except httpx.HTTPError as e:
            metrics.record_call("supabase", f"{method} /{self.table}", False, time.time() - start_time, str(e)[:200])
            logger.error(f"[Supabase] Request failed: {e}")
            raise KVStoreError(f"Supabase {method} failed: {e}") from e

        elapsed = time.time() - start_time
        if resp.status_code not in (200, 201, 204):
            metrics.record_call("supabase", f"{method} /{self.table}", False, elapsed, f"HTTP {resp.status_code}")
            logger.error(f"[Supabase] {method} {self.table}: {resp.status_code}")
            raise KVStoreError(f"Supabase {method} returned HTTP {resp.status_code}")

        metrics.record_call("supabase", f"{method} /{self.table}", True, elapsed)
        return resp.json() if resp.text else []

    def _is_expired(self, row: dict) -> bool:
        expires_at = row.get("expires_at_ms")
        return expires_at is not None and clock.now_ms() >= int(expires_at)

    async def get(self, key: str) -> Optional[str]:
        rows = await self._request("GET", params={
            "key": f"eq.{key}",
            "select": "value,expires_at_ms",
            "limit": "1",
        })
        if not rows:
            return None
        if self._is_expired(rows[0]):
            await self.delete(key)
            return None
        return rows[0]["value"]

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        row = {
            "key": key,
            "value": value,
            "expires_at_ms": clock.now_ms() + ttl_seconds * 1000 if ttl_seconds else None,
        }
        await self._request("POST", data=row, upsert=True)

    async def delete(self, key: str) -> None:
        await self._request("DELETE", params={"key": f"eq.{key}"})

    async def list(self, prefix: str = "") -> List[str]:
        params = {"select": "key,expires_at_ms", "order": "key.asc"}
        if prefix:
            params["key"] = f"like.{prefix}*"
        rows = await self._request("GET", params=params)
        return [row["key"] for row in rows if not self._is_expired(row)]
