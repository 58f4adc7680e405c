"""
Pool registry, settings, key-value store and lease lock tests
"""

import pytest

from config.contracts import RECEIPT_HOOK
from config.pools import (
    NoPoolConfiguredError,
    get_pool_for_pair,
    is_pair_supported,
    list_supported_pairs,
    resolve_pool,
)
from config.settings import Settings
from conftest import DAI, USDC, USER, WETH
from infrastructure.kv_store import InMemoryKVStore, get_json, put_json
from services.user_lock import UserBusyError, acquire_lease, release_lease, user_lease

UNKNOWN = "0x5555555555555555555555555555555555555555"


# ============================================
# POOLS
# ============================================

class TestPools:

    def test_lookup_is_order_independent(self):
        assert get_pool_for_pair(USDC, DAI) == get_pool_for_pair(DAI, USDC)

    def test_dai_usdc_pool(self):
        pool = resolve_pool(USDC.lower(), DAI)
        assert (pool.fee, pool.tick_spacing) == (500, 10)
        assert pool.hooks == RECEIPT_HOOK
        assert pool.currency0.lower() < pool.currency1.lower()

    def test_weth_usdc_pool(self):
        assert resolve_pool(WETH, USDC).fee == 3000

    def test_unknown_pair_raises(self):
        with pytest.raises(NoPoolConfiguredError) as exc:
            resolve_pool(USDC, UNKNOWN)
        assert "No pool configured for pair" in str(exc.value)
        assert "DAI/USDC (0.05%)" in str(exc.value)
        assert is_pair_supported(USDC, UNKNOWN) is False

    def test_list_pairs(self):
        assert list_supported_pairs() == ["DAI/USDC (0.05%)", "WETH/USDC (0.3%)"]


# ============================================
# SETTINGS
# ============================================

class TestSettings:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CHAIN_ID", "8453")
        monkeypatch.setenv("ZERODEV_BUNDLER_URL", "https://bundler.example")
        monkeypatch.setenv("ESTIMATED_TRADE_USD", "250")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings.from_env()

        assert settings.chain_id == 8453
        assert settings.has_bundler is True
        assert settings.estimated_trade_usd == 250.0
        assert settings.log_level == "DEBUG"

    def test_defaults(self, monkeypatch):
        for name in ("CHAIN_ID", "ZERODEV_BUNDLER_URL", "TREASURY_ADDRESS", "INTENT_TTL_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.chain_id == 84532
        assert settings.intent_ttl_seconds == 300
        assert settings.has_bundler is False
        assert settings.has_legacy_treasury is False


# ============================================
# KV STORE
# ============================================

class TestInMemoryKVStore:

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, clock):
        store = InMemoryKVStore()
        await store.put("a", "1", ttl_seconds=10)
        assert await store.get("a") == "1"
        clock.advance(10)
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_list_by_prefix(self, clock):
        store = InMemoryKVStore()
        await store.put("policy:b", "{}")
        await store.put("policy:a", "{}")
        await store.put("state:a", "{}")
        await store.put("policy:c", "{}", ttl_seconds=1)
        clock.advance(2)
        assert await store.list("policy:") == ["policy:a", "policy:b"]

    @pytest.mark.asyncio
    async def test_corrupt_json_reads_as_absent(self, clock):
        store = InMemoryKVStore()
        await store.put("k", "{not json")
        assert await get_json(store, "k") is None
        await put_json(store, "k", {"ok": True})
        assert await get_json(store, "k") == {"ok": True}


# ============================================
# LEASE LOCK
# ============================================

class TestUserLease:

    @pytest.mark.asyncio
    async def test_second_acquire_fails(self, store, clock):
        token = await acquire_lease(store, USER)
        assert token
        assert await acquire_lease(store, USER) is None
        assert await release_lease(store, USER, "someone-else") is False
        assert await release_lease(store, USER, token) is True
        assert await acquire_lease(store, USER) is not None

    @pytest.mark.asyncio
    async def test_lease_expires(self, store, clock):
        await acquire_lease(store, USER, ttl_seconds=5)
        clock.advance(5)
        assert await acquire_lease(store, USER) is not None

    @pytest.mark.asyncio
    async def test_context_manager(self, store, clock):
        async with user_lease(store, USER):
            with pytest.raises(UserBusyError):
                async with user_lease(store, USER):
                    pass
        assert await acquire_lease(store, USER) is not None
