"""
Claim History
Per-user fee claim log at claimHistory:{user}, newest first.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from infrastructure.kv_store import KVStore, get_json, put_json

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50
TTL_SECONDS = 90 * 24 * 60 * 60


@dataclass
class ClaimHistoryEntry:
    agent_name: str
    token_address: str
    weth_claimed: str
    deployer_amount: str
    service_fee: str
    timestamp: int
    mode: str  # 'auto' | 'manual'
    claim_tx_hash: Optional[str] = None
    distribution_tx_hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ClaimHistoryEntry":
        return cls(
            agent_name=data.get("agentName", ""),
            token_address=data.get("tokenAddress", ""),
            weth_claimed=data.get("wethClaimed", "0"),
            deployer_amount=data.get("deployerAmount", "0"),
            service_fee=data.get("serviceFee", "0"),
            timestamp=int(data.get("timestamp", 0)),
            mode=data.get("mode", "auto"),
            claim_tx_hash=data.get("claimTxHash"),
            distribution_tx_hash=data.get("distributionTxHash"),
        )

    def to_dict(self) -> dict:
        data = {
            "agentName": self.agent_name,
            "tokenAddress": self.token_address,
            "wethClaimed": self.weth_claimed,
            "deployerAmount": self.deployer_amount,
            "serviceFee": self.service_fee,
            "timestamp": self.timestamp,
            "mode": self.mode,
        }
        if self.claim_tx_hash:
            data["claimTxHash"] = self.claim_tx_hash
        if self.distribution_tx_hash:
            data["distributionTxHash"] = self.distribution_tx_hash
        return data


def _key(user_address: str) -> str:
    return f"claimHistory:{user_address.lower()}"


async def record_claim(store: KVStore, user_address: str, entry: ClaimHistoryEntry) -> None:
    entries = await get_json(store, _key(user_address))
    if not isinstance(entries, list):
        entries = []
    entries.insert(0, entry.to_dict())
    await put_json(store, _key(user_address), entries[:MAX_ENTRIES], ttl_seconds=TTL_SECONDS)


async def get_claim_history(store: KVStore, user_address: str, limit: int = None) -> List[ClaimHistoryEntry]:
    entries = await get_json(store, _key(user_address))
    if not isinstance(entries, list):
        return []
    if limit:
        entries = entries[:limit]
    return [ClaimHistoryEntry.from_dict(e) for e in entries]
