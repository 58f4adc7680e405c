"""
Session Key Storage
Delegated session keys at session:{user}, expiring with the key itself.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from infrastructure import clock
from infrastructure.kv_store import KVStore, get_json, put_json

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"


class SessionKeyError(Exception):
    """Session key is unusable (expired, not yet valid, or out of scope)"""


@dataclass
class SessionKeyConfig:
    agent_address: str
    allowed_targets: List[str] = field(default_factory=list)
    allowed_functions: List[str] = field(default_factory=list)
    valid_after: int = 0   # unix seconds
    valid_until: int = 0   # unix seconds
    max_daily_usd: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SessionKeyConfig":
        return cls(
            agent_address=data.get("agentAddress", ""),
            allowed_targets=list(data.get("allowedTargets") or []),
            allowed_functions=list(data.get("allowedFunctions") or []),
            valid_after=int(data.get("validAfter", 0)),
            valid_until=int(data.get("validUntil", 0)),
            max_daily_usd=data.get("maxDailyUsd"),
        )

    def to_dict(self) -> dict:
        data = {
            "agentAddress": self.agent_address,
            "allowedTargets": self.allowed_targets,
            "allowedFunctions": self.allowed_functions,
            "validAfter": self.valid_after,
            "validUntil": self.valid_until,
        }
        if self.max_daily_usd is not None:
            data["maxDailyUsd"] = self.max_daily_usd
        return data


@dataclass
class StoredSessionKey:
    address: str
    serialized: str
    config: SessionKeyConfig
    smart_account_address: str
    created_at: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "StoredSessionKey":
        return cls(
            address=data.get("address", ""),
            serialized=data.get("serialized", ""),
            config=SessionKeyConfig.from_dict(data.get("config") or {}),
            smart_account_address=data.get("smartAccountAddress", ""),
            created_at=int(data.get("createdAt", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "serialized": self.serialized,
            "config": self.config.to_dict(),
            "smartAccountAddress": self.smart_account_address,
            "createdAt": self.created_at,
        }

    def is_expired(self, now_s: int = None) -> bool:
        now_s = clock.now_seconds() if now_s is None else now_s
        return self.config.valid_until <= now_s


def _key(user_address: str) -> str:
    return f"{SESSION_KEY_PREFIX}{user_address.lower()}"


async def store_session_key(store: KVStore, user_address: str, session_key: StoredSessionKey) -> None:
    """Store a session key; TTL is its remaining validity"""
    now_s = clock.now_seconds()
    ttl = session_key.config.valid_until - now_s
    if ttl <= 0:
        raise SessionKeyError("Session key has already expired")
    session_key.created_at = session_key.created_at or now_s
    await put_json(store, _key(user_address), session_key.to_dict(), ttl_seconds=ttl)


async def get_session_key(store: KVStore, user_address: str) -> Optional[StoredSessionKey]:
    """Non-expired session key for the user, or None"""
    data = await get_json(store, _key(user_address))
    if not data:
        return None
    session_key = StoredSessionKey.from_dict(data)
    if session_key.is_expired():
        await store.delete(_key(user_address))
        return None
    return session_key
