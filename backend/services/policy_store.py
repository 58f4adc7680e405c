"""
Policy Store
Persistence for user policies at policy:{user} (no TTL).

Policies are validated on save; a stored policy that no longer parses is
treated as absent.
"""

import logging
from typing import List, Optional

from agents.policy import AnyPolicy, parse_policy, validate_policy
from infrastructure.kv_store import KVStore, get_json, put_json

logger = logging.getLogger(__name__)

POLICY_PREFIX = "policy:"


def policy_key(user_address: str) -> str:
    return f"{POLICY_PREFIX}{user_address.lower()}"


async def load_policy(store: KVStore, user_address: str) -> Optional[AnyPolicy]:
    data = await get_json(store, policy_key(user_address))
    if not data or not isinstance(data, dict):
        return None
    try:
        return parse_policy(data)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"[Policy] Malformed policy for {user_address}, ignoring: {e}")
        return None


async def save_policy(store: KVStore, user_address: str, policy: AnyPolicy) -> None:
    """Raises ValueError when the policy fails validation"""
    valid, errors = validate_policy(policy)
    if not valid:
        raise ValueError(f"Invalid policy: {'; '.join(errors)}")
    await put_json(store, policy_key(user_address), policy.to_dict())
    logger.info(f"[Policy] Saved {policy.type} policy for {user_address}")


async def delete_policy(store: KVStore, user_address: str) -> None:
    await store.delete(policy_key(user_address))


async def list_policy_users(store: KVStore) -> List[str]:
    """All user addresses with a stored policy"""
    keys = await store.list(POLICY_PREFIX)
    return [key[len(POLICY_PREFIX):] for key in keys]
