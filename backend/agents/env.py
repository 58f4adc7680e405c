"""
Agent environment
The collaborators every pipeline entry point runs against.
"""

from dataclasses import dataclass
from typing import Any, Optional

from config.settings import Settings, get_settings
from infrastructure.kv_store import KVStore, get_store


@dataclass
class AgentEnv:
    settings: Settings
    store: KVStore
    reader: Any = None       # balance / claimable-fee reader
    dispatcher: Any = None   # ExecutionDispatcher
    discovery: Any = None    # TokenDiscoveryClient
    fee_locker: Any = None   # FeeLockerClient


_env: Optional[AgentEnv] = None


def build_env(settings: Settings = None, store: KVStore = None) -> AgentEnv:
    from integrations.execution_dispatcher import ExecutionDispatcher
    from integrations.fee_locker import FeeLockerClient
    from services.chain_reader import ChainReader
    from services.token_discovery import TokenDiscoveryClient

    settings = settings or get_settings()
    store = store or get_store()
    reader = ChainReader(settings)
    return AgentEnv(
        settings=settings,
        store=store,
        reader=reader,
        dispatcher=ExecutionDispatcher(settings, store),
        discovery=TokenDiscoveryClient(settings),
        fee_locker=FeeLockerClient(settings, reader.w3),
    )


def get_env() -> AgentEnv:
    """Get or create the process-wide environment"""
    global _env
    if _env is None:
        _env = build_env()
    return _env
