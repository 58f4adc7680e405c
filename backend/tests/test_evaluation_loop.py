"""
Evaluation loop tests
Gates (cooldown, dedup, policy), daily counters, and drift -> execution.
"""

import pytest
import pytest_asyncio

from agents.evaluation_loop import (
    STATE_TTL_SECONDS,
    EvaluationContext,
    EvaluationState,
    evaluate,
    load_state,
    save_state,
    state_key,
)
from agents.policy import parse_policy
from conftest import DAI, NOW_MS, USDC, USER
from integrations.trade import ExecutionResult, TradeRequest
from services.authorization import UserAuthorization, save_authorization
from services.policy_store import save_policy
from services.spending_tracker import get_daily_spent, track_spending

DAY_MS = 24 * 60 * 60 * 1000
CRON = EvaluationContext(trigger="cron")


def rebalance_policy():
    return parse_policy({
        "type": "stablecoin-rebalance",
        "driftThreshold": 5,
        "maxSlippageBps": 50,
        "tokens": [
            {"address": USDC, "symbol": "USDC", "targetPercentage": 50, "decimals": 6},
            {"address": DAI, "symbol": "DAI", "targetPercentage": 50, "decimals": 18},
        ],
    })


async def authorize(store, expiry=NOW_MS + DAY_MS, max_daily_usd=1000):
    await save_authorization(store, USER, UserAuthorization(
        signature="0xsig", expiry=expiry, max_daily_usd=max_daily_usd, created_at=NOW_MS,
    ))


@pytest_asyncio.fixture
async def drifted(env, clock):
    """User with a 90/10 wallet against a 50/50 policy"""
    await save_policy(env.store, USER, rebalance_policy())
    env.reader.balances[USDC.lower()] = 900 * 10 ** 6
    env.reader.balances[DAI.lower()] = 100 * 10 ** 18
    return env


# ============================================
# GATES
# ============================================

class TestGates:

    @pytest.mark.asyncio
    async def test_no_policy(self, env, clock):
        result = await evaluate(env, USER, CRON)
        assert result.to_dict() == {"evaluated": False, "skipped": True, "skipReason": "no_policy"}

    @pytest.mark.asyncio
    async def test_cooldown(self, drifted, clock):
        await authorize(drifted.store)
        first = await evaluate(drifted, USER, CRON)
        assert first.evaluated is True

        clock.advance(30)
        second = await evaluate(drifted, USER, CRON)
        assert second.skip_reason == "cooldown"
        assert drifted.dispatcher.dispatch.await_count == 1

        clock.advance(31)
        third = await evaluate(drifted, USER, CRON)
        assert third.evaluated is True

    @pytest.mark.asyncio
    async def test_duplicate_webhook_event(self, drifted, clock):
        state = EvaluationState.initial(NOW_MS)
        state.last_event_id = "evt-1"
        await save_state(drifted.store, USER, state)

        context = EvaluationContext(trigger="webhook", event_id="evt-1", event_type="ExecutionReceipt")
        result = await evaluate(drifted, USER, context)
        assert result.skip_reason == "duplicate_event"

    @pytest.mark.asyncio
    async def test_same_event_id_from_cron_is_not_deduplicated(self, drifted, clock):
        state = EvaluationState.initial(NOW_MS)
        state.last_event_id = "evt-1"
        await save_state(drifted.store, USER, state)

        result = await evaluate(drifted, USER, EvaluationContext(trigger="cron", event_id="evt-1"))
        assert result.evaluated is True


# ============================================
# STATE
# ============================================

class TestState:

    @pytest.mark.asyncio
    async def test_no_drift_stamps_state(self, env, clock):
        await save_policy(env.store, USER, rebalance_policy())
        env.reader.balances[USDC.lower()] = 500 * 10 ** 6
        env.reader.balances[DAI.lower()] = 500 * 10 ** 18

        result = await evaluate(env, USER, EvaluationContext(trigger="webhook", event_id="evt-9"))
        assert result.to_dict() == {"evaluated": True, "skipped": False, "hasDrift": False, "executed": False}

        state = await load_state(env.store, USER)
        assert state.last_evaluation_at == NOW_MS
        assert state.last_event_id == "evt-9"
        assert env.store.ttl_of(state_key(USER)) == STATE_TTL_SECONDS

    @pytest.mark.asyncio
    async def test_daily_reset_persisted_during_cooldown(self, env, clock):
        state = EvaluationState(
            last_evaluation_at=NOW_MS - 10_000,
            daily_execution_count=3,
            daily_volume_usd=300.0,
            daily_reset_at=NOW_MS - DAY_MS,
        )
        await save_state(env.store, USER, state)

        result = await evaluate(env, USER, CRON)
        assert result.skip_reason == "cooldown"

        saved = await load_state(env.store, USER)
        assert saved.daily_execution_count == 0
        assert saved.daily_volume_usd == 0.0
        assert saved.daily_reset_at == NOW_MS

    def test_reset_not_needed_same_day(self):
        state = EvaluationState(daily_execution_count=2, daily_reset_at=NOW_MS - 3600_000)
        assert state.reset_daily_if_needed(NOW_MS) is False
        assert state.daily_execution_count == 2

    def test_round_trip_keys(self):
        data = EvaluationState.initial(NOW_MS).to_dict()
        assert set(data) == {
            "lastEvaluationAt", "lastExecutionAt", "lastEventId", "dailyExecutionCount",
            "dailyVolumeUsd", "dailyResetAt", "lastExecutionTxHash",
        }


# ============================================
# DRIFT -> EXECUTION
# ============================================

class TestExecution:

    @pytest.mark.asyncio
    async def test_drift_dispatches_first_pair(self, drifted, clock):
        await authorize(drifted.store)
        result = await evaluate(drifted, USER, CRON)

        assert result.executed is True
        drifted.dispatcher.dispatch.assert_awaited_once_with(TradeRequest(
            user_address=USER,
            token_in=USDC,
            token_out=DAI,
            amount_in=400 * 10 ** 6,
            max_slippage_bps=50,
        ))

        data = result.to_dict()
        assert data["hasDrift"] is True
        assert len(data["driftDetails"]["drifts"]) == 2
        assert data["executionResult"] == {"success": True, "executionMode": "intent", "txHash": "0xabc"}

        state = await load_state(drifted.store, USER)
        assert state.daily_execution_count == 1
        assert state.daily_volume_usd == 100.0
        assert state.last_execution_at == NOW_MS
        assert state.last_execution_tx_hash == "0xabc"
        assert await get_daily_spent(drifted.store, USER) == 100.0

    @pytest.mark.asyncio
    async def test_missing_authorization(self, drifted, clock):
        result = await evaluate(drifted, USER, CRON)
        assert result.executed is False
        assert result.error == "No authorization found for this address"
        drifted.dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_authorization(self, drifted, clock):
        await authorize(drifted.store, expiry=NOW_MS - 1)
        result = await evaluate(drifted, USER, CRON)

        assert result.evaluated is True
        assert result.has_drift is True
        assert result.executed is False
        assert result.error == "Authorization has expired"
        drifted.dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_daily_limit_precheck(self, drifted, clock):
        await authorize(drifted.store, max_daily_usd=150)
        await track_spending(drifted.store, USER, 100)

        result = await evaluate(drifted, USER, CRON)
        assert result.executed is False
        assert result.error == "Daily limit exceeded. Spent: $100.00, Limit: $150, Requested: $100.00"

    @pytest.mark.asyncio
    async def test_failed_dispatch_leaves_counters(self, drifted, clock):
        await authorize(drifted.store)
        drifted.dispatcher.dispatch.return_value = ExecutionResult.failed("intent", "execution reverted")

        result = await evaluate(drifted, USER, CRON)
        assert result.executed is False
        assert result.error == "execution reverted"

        state = await load_state(drifted.store, USER)
        assert state.daily_execution_count == 0
        assert state.last_evaluation_at == NOW_MS
        assert await get_daily_spent(drifted.store, USER) == 0.0

    @pytest.mark.asyncio
    async def test_unified_policy_uses_stablecoin_sub_policy(self, env, clock):
        await save_policy(env.store, USER, parse_policy({
            "type": "unified",
            "stablecoinRebalance": {
                "enabled": True,
                "driftThreshold": 5,
                "tokens": rebalance_policy().to_dict()["tokens"],
            },
        }))
        env.reader.balances[USDC.lower()] = 900 * 10 ** 6
        env.reader.balances[DAI.lower()] = 100 * 10 ** 18
        await authorize(env.store)

        result = await evaluate(env, USER, CRON)
        assert result.executed is True

    @pytest.mark.asyncio
    async def test_unified_policy_without_rebalance_is_no_policy(self, env, clock):
        await save_policy(env.store, USER, parse_policy({"type": "unified", "feeClaiming": {"enabled": True}}))
        result = await evaluate(env, USER, CRON)
        assert result.skip_reason == "no_policy"
