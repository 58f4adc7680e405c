"""
Agent Registry
Stored agents, agent wallet lists, and the treasury / delegation indices.

Key layout:
- agent:{user}:{agentName}      stored agent (address, encryptedKey, distribution settings)
- agents:{user}                 list of the user's agent wallet addresses
- treasury-agents               list of {userAddress, agentName} treasury identities
- delegations:{treasuryAddress} list of agents that delegated fee claiming to a treasury
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config.settings import Settings
from infrastructure import clock
from infrastructure.kv_store import KVStore, get_json, put_json
from services.agent_keys import decrypt_private_key

logger = logging.getLogger(__name__)

AGENT_PREFIX = "agent:"
AGENT_WALLETS_PREFIX = "agents:"
TREASURY_INDEX_KEY = "treasury-agents"
DELEGATIONS_PREFIX = "delegations:"

LEGACY_TREASURY_NAME = "treasury"
DEFAULT_FEE_SPLIT = 85

SCHEDULE_INTERVALS_MS = {
    "daily": 24 * 60 * 60 * 1000,
    "weekly": 7 * 24 * 60 * 60 * 1000,
    "monthly": 30 * 24 * 60 * 60 * 1000,
}


@dataclass
class StoredAgent:
    address: str
    encrypted_key: str
    agent_name: str
    token_address: Optional[str] = None
    tokens: List[str] = field(default_factory=list)
    distribution_mode: str = "auto"  # 'auto' | 'manual'
    distribution_schedule: Optional[str] = None  # 'daily' | 'weekly' | 'monthly'
    fee_split: int = DEFAULT_FEE_SPLIT  # deployer share, percent
    last_distribution_time: Optional[int] = None
    next_distribution_time: Optional[int] = None
    created_at: int = 0

    _FIELDS = {
        "address": "address",
        "encryptedKey": "encrypted_key",
        "agentName": "agent_name",
        "tokenAddress": "token_address",
        "tokens": "tokens",
        "distributionMode": "distribution_mode",
        "distributionSchedule": "distribution_schedule",
        "feeSplit": "fee_split",
        "lastDistributionTime": "last_distribution_time",
        "nextDistributionTime": "next_distribution_time",
        "createdAt": "created_at",
    }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredAgent":
        kwargs = {attr: data[key] for key, attr in cls._FIELDS.items() if data.get(key) is not None}
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, attr in self._FIELDS.items()}

    @property
    def claim_tokens(self) -> List[str]:
        tokens = list(self.tokens)
        if self.token_address and self.token_address.lower() not in {t.lower() for t in tokens}:
            tokens.append(self.token_address)
        return tokens


@dataclass
class TreasuryIdentity:
    user_address: str
    agent_name: str
    address: str = ""
    encrypted_key: str = ""  # raw 0x keys are accepted too
    legacy: bool = False


@dataclass
class DelegationEntry:
    user_address: str
    agent_name: str
    agent_address: str
    tokens: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "DelegationEntry":
        return cls(
            user_address=data["userAddress"],
            agent_name=data["agentName"],
            agent_address=data.get("agentAddress", ""),
            tokens=list(data.get("tokens") or []),
        )

    def to_dict(self) -> dict:
        return {
            "userAddress": self.user_address,
            "agentName": self.agent_name,
            "agentAddress": self.agent_address,
            "tokens": self.tokens,
        }


def compute_next_distribution_time(last_ms: int, schedule: Optional[str]) -> Optional[int]:
    interval = SCHEDULE_INTERVALS_MS.get(schedule or "")
    if interval is None:
        return None
    return last_ms + interval


# ============================================
# STORED AGENTS
# ============================================

def agent_key(user_address: str, agent_name: str) -> str:
    return f"{AGENT_PREFIX}{user_address.lower()}:{agent_name}"


async def get_stored_agent(store: KVStore, user_address: str, agent_name: str) -> Optional[StoredAgent]:
    data = await get_json(store, agent_key(user_address, agent_name))
    if not data:
        return None
    return StoredAgent.from_dict(data)


async def save_stored_agent(store: KVStore, user_address: str, agent: StoredAgent) -> None:
    if not agent.created_at:
        agent.created_at = clock.now_ms()
    await put_json(store, agent_key(user_address, agent.agent_name), agent.to_dict())
    await add_agent_wallet(store, user_address, agent.address)


async def update_stored_agent(store: KVStore, user_address: str, agent_name: str, **updates) -> Optional[StoredAgent]:
    """Merge attribute updates into a stored agent; None if it does not exist"""
    agent = await get_stored_agent(store, user_address, agent_name)
    if agent is None:
        return None
    for attr, value in updates.items():
        setattr(agent, attr, value)
    await put_json(store, agent_key(user_address, agent_name), agent.to_dict())
    return agent


async def list_stored_agents(store: KVStore, user_address: str) -> List[StoredAgent]:
    prefix = f"{AGENT_PREFIX}{user_address.lower()}:"
    agents = []
    for key in await store.list(prefix):
        data = await get_json(store, key)
        if data:
            agents.append(StoredAgent.from_dict(data))
    return agents


def agent_private_key(agent: StoredAgent, settings: Settings = None) -> str:
    return decrypt_private_key(agent.encrypted_key, settings)


# ============================================
# AGENT WALLETS
# ============================================

async def get_agent_wallets(store: KVStore, user_address: str) -> List[str]:
    data = await get_json(store, f"{AGENT_WALLETS_PREFIX}{user_address.lower()}")
    return list(data) if isinstance(data, list) else []


async def add_agent_wallet(store: KVStore, user_address: str, wallet: str) -> None:
    wallets = await get_agent_wallets(store, user_address)
    if wallet.lower() not in {w.lower() for w in wallets}:
        wallets.append(wallet)
        await put_json(store, f"{AGENT_WALLETS_PREFIX}{user_address.lower()}", wallets)


# ============================================
# TREASURY / DELEGATION INDICES
# ============================================

async def register_treasury_agent(store: KVStore, user_address: str, agent_name: str) -> None:
    entries = await get_json(store, TREASURY_INDEX_KEY) or []
    for entry in entries:
        if entry["userAddress"].lower() == user_address.lower() and entry["agentName"] == agent_name:
            return
    entries.append({"userAddress": user_address.lower(), "agentName": agent_name})
    await put_json(store, TREASURY_INDEX_KEY, entries)


async def list_treasury_identities(store: KVStore, settings: Settings) -> List[TreasuryIdentity]:
    """
    Legacy single treasury (from settings) first, then the registered index.
    Duplicates by address are dropped.
    """
    identities: List[TreasuryIdentity] = []
    seen = set()

    if settings.has_legacy_treasury:
        identities.append(TreasuryIdentity(
            user_address=settings.treasury_address.lower(),
            agent_name=LEGACY_TREASURY_NAME,
            address=settings.treasury_address,
            encrypted_key=settings.treasury_private_key,
            legacy=True,
        ))
        seen.add(settings.treasury_address.lower())

    for entry in await get_json(store, TREASURY_INDEX_KEY) or []:
        agent = await get_stored_agent(store, entry["userAddress"], entry["agentName"])
        if agent is None:
            logger.warning(f"[Registry] Treasury {entry['userAddress']}/{entry['agentName']} has no stored agent")
            continue
        if agent.address.lower() in seen:
            continue
        seen.add(agent.address.lower())
        identities.append(TreasuryIdentity(
            user_address=entry["userAddress"],
            agent_name=entry["agentName"],
            address=agent.address,
            encrypted_key=agent.encrypted_key,
        ))

    return identities


async def add_delegation(store: KVStore, treasury_address: str, entry: DelegationEntry) -> None:
    key = f"{DELEGATIONS_PREFIX}{treasury_address.lower()}"
    entries = [DelegationEntry.from_dict(e) for e in await get_json(store, key) or []]
    entries = [
        e for e in entries
        if not (e.user_address.lower() == entry.user_address.lower() and e.agent_name == entry.agent_name)
    ]
    entries.append(entry)
    await put_json(store, key, [e.to_dict() for e in entries])


async def get_delegations(store: KVStore, treasury_address: str) -> List[DelegationEntry]:
    data = await get_json(store, f"{DELEGATIONS_PREFIX}{treasury_address.lower()}") or []
    return [DelegationEntry.from_dict(e) for e in data]
