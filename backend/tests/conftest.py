"""
Shared fixtures: in-memory store, fixed clock, fake chain reader, test env.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agents.env import AgentEnv
from config.contracts import TOKENS
from config.settings import Settings
from infrastructure.kv_store import InMemoryKVStore
from infrastructure.metrics import metrics
from integrations.trade import ExecutionResult

USER = "0x1111111111111111111111111111111111111111"
AGENT_WALLET = "0x2222222222222222222222222222222222222222"
INTENT_ROUTER = "0x87FC6810C2f9851B43570CdC8b655C21210A155d"
# Hardhat account #0
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

USDC = TOKENS["USDC"]
DAI = TOKENS["DAI"]
WETH = TOKENS["WETH"]

# 2026-03-10 12:00:00 UTC
NOW_MS = int(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)


class FakeReader:
    """Balance / claimable-fee reader over plain dicts"""

    def __init__(self, balances=None, fees=None, failing=None):
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.fees = {(t.lower(), w.lower()): v for (t, w), v in (fees or {}).items()}
        self.failing = {t.lower() for t in (failing or [])}

    async def get_balance(self, token: str, owner: str) -> int:
        if token.lower() in self.failing:
            raise ConnectionError("rpc down")
        return self.balances.get(token.lower(), 0)

    async def get_claimable_fee(self, token: str, owner: str) -> int:
        if token.lower() in self.failing:
            raise ConnectionError("rpc down")
        return self.fees.get((token.lower(), owner.lower()), 0)


class Clock:
    def __init__(self, now_ms: int):
        self.now = now_ms

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    fake = Clock(NOW_MS)
    with patch("infrastructure.clock.now_ms", side_effect=lambda: fake.now):
        yield fake


@pytest.fixture
def store():
    return InMemoryKVStore()


@pytest.fixture
def settings():
    return Settings(
        chain_id=84532,
        intent_router=INTENT_ROUTER,
        private_key=TEST_PRIVATE_KEY,
        secret_key="test-secret",
        service_fee_address="0x9999999999999999999999999999999999999999",
    )


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.dispatch = AsyncMock(return_value=ExecutionResult(
        success=True, execution_mode="intent", tx_hash="0xabc"
    ))
    return mock


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def env(settings, store, reader, dispatcher):
    discovery = MagicMock()
    discovery.discover_agent_tokens = AsyncMock(return_value=[])
    fee_locker = MagicMock()
    return AgentEnv(
        settings=settings,
        store=store,
        reader=reader,
        dispatcher=dispatcher,
        discovery=discovery,
        fee_locker=fee_locker,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()
