"""
Daily Spending Tracker
Per-user, per-UTC-day accumulator of executed USD volume.

Key: spending:{user}:{YYYY-MM-DD}. The value is a decimal string and the key
expires after 24h, so the daily reset happens through expiry rather than an
explicit zeroing. Updates are read-then-write; concurrent trades for the same
user are serialized by the evaluation cooldown, not here.
"""

import logging
from dataclasses import dataclass

from infrastructure import clock
from infrastructure.kv_store import KVStore

logger = logging.getLogger(__name__)

SPENDING_PREFIX = "spending:"
SPENDING_TTL_SECONDS = 86400


@dataclass
class SpendCheck:
    allowed: bool
    current_spent: float
    remaining: float

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "currentSpent": self.current_spent,
            "remaining": self.remaining,
        }


def spending_key(user_address: str, date_key: str = None) -> str:
    return f"{SPENDING_PREFIX}{user_address.lower()}:{date_key or clock.utc_date_key()}"


async def get_daily_spent(store: KVStore, user_address: str) -> float:
    """USD already spent today (UTC)"""
    raw = await store.get(spending_key(user_address))
    if not raw:
        return 0.0
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Spending] Unparseable spending value for {user_address}: {raw!r}")
        return 0.0


async def track_spending(store: KVStore, user_address: str, amount_usd: float) -> None:
    """Add amount_usd to today's total"""
    key = spending_key(user_address)
    current = await get_daily_spent(store, user_address)
    new_total = current + amount_usd
    await store.put(key, repr(new_total), ttl_seconds=SPENDING_TTL_SECONDS)
    logger.info(f"[Spending] {user_address}: ${current:.2f} -> ${new_total:.2f}")


async def can_spend(store: KVStore, user_address: str, amount_usd: float, max_daily_usd: float) -> SpendCheck:
    current = await get_daily_spent(store, user_address)
    return SpendCheck(
        allowed=current + amount_usd <= max_daily_usd,
        current_spent=current,
        remaining=max_daily_usd - current,
    )
