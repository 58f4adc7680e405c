"""
Unified trigger checker tests
"""

import pytest
import pytest_asyncio

from agents.policy import FeeClaiming, TokenStrategy, UnifiedPolicy, parse_policy
from agents.trigger_checker import (
    ActionType,
    check_all_triggers,
    check_exit_conditions,
    check_fee_threshold,
    format_weth,
    get_last_claim_time,
    parse_weth,
    save_last_claim_time,
    should_claim_by_frequency,
)
from conftest import AGENT_WALLET, DAI, NOW_MS, USDC, USER
from services.agent_registry import add_agent_wallet
from services.token_discovery import AgentToken

AGENT_TOKEN = "0x3333333333333333333333333333333333333333"
HOUR_MS = 60 * 60 * 1000


def unified_policy(fee=True, rebalance=True, exits=True) -> UnifiedPolicy:
    return parse_policy({
        "type": "unified",
        "maxSlippageBps": 50,
        "stablecoinRebalance": {
            "enabled": rebalance,
            "driftThreshold": 5,
            "tokens": [
                {"address": USDC, "symbol": "USDC", "targetPercentage": 50, "decimals": 6},
                {"address": DAI, "symbol": "DAI", "targetPercentage": 50, "decimals": 18},
            ],
        },
        "feeClaiming": {"enabled": fee, "frequency": "threshold", "minThresholdWeth": "0.1"},
        "tokenStrategy": {"enabled": exits, "sellLosers": True, "loserThreshold": 30},
    })


@pytest_asyncio.fixture
async def agent_setup(env):
    await add_agent_wallet(env.store, USER, AGENT_WALLET)
    env.discovery.discover_agent_tokens.return_value = [
        AgentToken(address=AGENT_TOKEN, symbol="AGT", name="Agent", agent_wallet=AGENT_WALLET,
                   price_change_24h=-45.0),
    ]
    env.reader.fees[(AGENT_TOKEN.lower(), AGENT_WALLET.lower())] = 2 * 10 ** 17
    env.reader.balances[USDC.lower()] = 900 * 10 ** 6
    env.reader.balances[DAI.lower()] = 100 * 10 ** 18
    return env


# ============================================
# WETH AMOUNTS
# ============================================

class TestWethAmounts:

    def test_parse(self):
        assert parse_weth("0.1") == 10 ** 17
        assert parse_weth(None) == 10 ** 17
        assert parse_weth("garbage") == 10 ** 17

    def test_format(self):
        assert format_weth(2 * 10 ** 17) == "0.2000"
        assert format_weth(0) == "0.0000"


# ============================================
# INDIVIDUAL TRIGGERS
# ============================================

class TestFeeThreshold:

    @pytest.mark.asyncio
    async def test_no_wallets_and_no_tokens(self, env):
        result = await check_fee_threshold(env, USER, FeeClaiming(enabled=True))
        assert result.should_claim is False
        assert result.total_weth == "0"
        env.discovery.discover_agent_tokens.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sums_discovered_tokens(self, agent_setup):
        result = await check_fee_threshold(agent_setup, USER, FeeClaiming(enabled=True, min_threshold_weth="0.1"))
        assert result.should_claim is True
        assert result.claimable_tokens == [AGENT_TOKEN]
        assert result.total_weth_wei == 2 * 10 ** 17

    @pytest.mark.asyncio
    async def test_below_threshold(self, agent_setup):
        result = await check_fee_threshold(agent_setup, USER, FeeClaiming(enabled=True, min_threshold_weth="0.5"))
        assert result.should_claim is False

    @pytest.mark.asyncio
    async def test_configured_tokens_skip_discovery(self, agent_setup):
        config = FeeClaiming(enabled=True, tokens=[AGENT_TOKEN])
        await check_fee_threshold(agent_setup, USER, config)
        agent_setup.discovery.discover_agent_tokens.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_fee_read_is_skipped(self, agent_setup):
        agent_setup.reader.failing.add(AGENT_TOKEN.lower())
        result = await check_fee_threshold(agent_setup, USER, FeeClaiming(enabled=True))
        assert result.should_claim is False
        assert result.claimable_tokens == []


class TestExitConditions:

    @pytest.mark.asyncio
    async def test_loser_is_exited(self, agent_setup):
        result = await check_exit_conditions(agent_setup, USER, TokenStrategy(enabled=True, sell_losers=True))
        assert result.should_exit is True
        assert result.tokens_to_exit[0]["reason"] == "Down 45.0% (threshold: 30%)"

    @pytest.mark.asyncio
    async def test_missing_price_change_is_ignored(self, agent_setup):
        agent_setup.discovery.discover_agent_tokens.return_value[0].price_change_24h = None
        result = await check_exit_conditions(agent_setup, USER, TokenStrategy(enabled=True, sell_losers=True))
        assert result.should_exit is False

    @pytest.mark.asyncio
    async def test_disabled(self, agent_setup):
        result = await check_exit_conditions(agent_setup, USER, TokenStrategy(enabled=True, sell_losers=False))
        assert result.should_exit is False


# ============================================
# COMBINED
# ============================================

class TestCheckAllTriggers:

    @pytest.mark.asyncio
    async def test_priority_order_and_reason(self, agent_setup, clock):
        result = await check_all_triggers(agent_setup, USER, unified_policy())

        assert result.triggered is True
        assert [a.type for a in result.actions] == [
            ActionType.CLAIM_FEES, ActionType.REBALANCE, ActionType.EXIT_TOKEN,
        ]
        assert [a.priority for a in result.actions] == [1, 2, 3]
        assert result.reason == (
            "Fee threshold met: 0.2000 WETH claimable; "
            "Drift threshold exceeded for 2 token(s); "
            "Exit trigger: 1 underperforming token(s)"
        )
        assert result.timestamp == NOW_MS

    @pytest.mark.asyncio
    async def test_nothing_fires(self, env, clock):
        result = await check_all_triggers(env, USER, unified_policy())
        assert result.triggered is False
        assert result.actions == []
        assert result.reason == "No triggers fired"

    @pytest.mark.asyncio
    async def test_disabled_families_are_not_evaluated(self, agent_setup, clock):
        result = await check_all_triggers(agent_setup, USER, unified_policy(fee=False, exits=False))
        assert [a.type for a in result.actions] == [ActionType.REBALANCE]

    @pytest.mark.asyncio
    async def test_to_dict_uses_action_names(self, agent_setup, clock):
        data = (await check_all_triggers(agent_setup, USER, unified_policy())).to_dict()
        assert [a["type"] for a in data["actions"]] == ["claim-fees", "rebalance", "exit-token"]


# ============================================
# CLAIM FREQUENCY
# ============================================

class TestClaimFrequency:

    def test_threshold_always_claims(self):
        assert should_claim_by_frequency("threshold", NOW_MS, NOW_MS) is True

    def test_first_claim(self):
        assert should_claim_by_frequency("weekly", None, NOW_MS) is True

    def test_daily(self):
        assert should_claim_by_frequency("daily", NOW_MS - HOUR_MS, NOW_MS) is False
        assert should_claim_by_frequency("daily", NOW_MS - 24 * HOUR_MS, NOW_MS) is True

    def test_unknown_frequency(self):
        assert should_claim_by_frequency("hourly", NOW_MS - 100 * HOUR_MS, NOW_MS) is False

    @pytest.mark.asyncio
    async def test_last_claim_round_trip(self, store):
        assert await get_last_claim_time(store, USER) is None
        await save_last_claim_time(store, USER, NOW_MS)
        assert await get_last_claim_time(store, USER) == NOW_MS
