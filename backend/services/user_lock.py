"""
User Lease Lock
Short-lived lock:{user} key in the shared store guarding manual evaluations.

This is a lease, not a true mutex: the store has no compare-and-set, so two
callers racing on the same instant may both acquire it.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from infrastructure.kv_store import KVStore

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock:"
DEFAULT_LEASE_SECONDS = 120


class UserBusyError(Exception):
    """Another invocation holds the user's lease"""


def _key(user_address: str) -> str:
    return f"{LOCK_PREFIX}{user_address.lower()}"


async def acquire_lease(store: KVStore, user_address: str, ttl_seconds: int = DEFAULT_LEASE_SECONDS) -> Optional[str]:
    """Returns a lease token, or None if the user is already locked"""
    key = _key(user_address)
    if await store.get(key) is not None:
        return None
    token = uuid.uuid4().hex
    await store.put(key, token, ttl_seconds=ttl_seconds)
    return token


async def release_lease(store: KVStore, user_address: str, token: str) -> bool:
    """Delete the lease only if it is still ours"""
    key = _key(user_address)
    if await store.get(key) != token:
        logger.warning(f"[Lock] Lease for {user_address} changed hands, not releasing")
        return False
    await store.delete(key)
    return True


@asynccontextmanager
async def user_lease(store: KVStore, user_address: str, ttl_seconds: int = DEFAULT_LEASE_SECONDS):
    token = await acquire_lease(store, user_address, ttl_seconds)
    if token is None:
        raise UserBusyError(f"Evaluation already in progress for {user_address}")
    try:
        yield token
    finally:
        await release_lease(store, user_address, token)
