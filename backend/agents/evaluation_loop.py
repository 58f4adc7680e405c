"""
Evaluation Loop
Per-user evaluation pipeline shared by the cron sweep, webhook ingest and
manual evaluation endpoint.

Steps (fixed order):
1. load or initialize state:{user}
2. UTC day rollover -> zero daily counters
3. cooldown gate (60s since lastEvaluationAt)
4. webhook dedup gate (eventId == lastEventId)
5. policy gate
6. drift check; stamp lastEvaluationAt / lastEventId
7. drift -> authorization, daily-limit pre-check, dispatch of the first
   sell/buy pair, counters on success
8. persist state (30 day TTL)

The cooldown is cooperative: two instances evaluating the same user inside
the same instant may both pass it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agents.drift_detector import DriftResult, check_drift
from agents.env import AgentEnv
from agents.policy import Policy, UnifiedPolicy
from infrastructure import clock
from infrastructure.kv_store import KVStore, get_json, put_json
from integrations.trade import ExecutionResult, TradeRequest
from services.authorization import format_usd_limit, load_authorization, validate_authorization
from services.policy_store import load_policy
from services.spending_tracker import get_daily_spent, track_spending

logger = logging.getLogger(__name__)

STATE_PREFIX = "state:"
STATE_TTL_SECONDS = 30 * 24 * 60 * 60

SKIP_COOLDOWN = "cooldown"
SKIP_DUPLICATE_EVENT = "duplicate_event"
SKIP_NO_POLICY = "no_policy"
SKIP_ERROR = "error"


@dataclass
class EvaluationState:
    last_evaluation_at: int = 0
    last_execution_at: Optional[int] = None
    last_event_id: Optional[str] = None
    daily_execution_count: int = 0
    daily_volume_usd: float = 0.0
    daily_reset_at: int = 0
    last_execution_tx_hash: Optional[str] = None

    @classmethod
    def initial(cls, now_ms: int) -> "EvaluationState":
        return cls(daily_reset_at=now_ms)

    @classmethod
    def from_dict(cls, data: dict) -> "EvaluationState":
        return cls(
            last_evaluation_at=int(data.get("lastEvaluationAt") or 0),
            last_execution_at=data.get("lastExecutionAt"),
            last_event_id=data.get("lastEventId"),
            daily_execution_count=int(data.get("dailyExecutionCount") or 0),
            daily_volume_usd=float(data.get("dailyVolumeUsd") or 0),
            daily_reset_at=int(data.get("dailyResetAt") or 0),
            last_execution_tx_hash=data.get("lastExecutionTxHash"),
        )

    def to_dict(self) -> dict:
        return {
            "lastEvaluationAt": self.last_evaluation_at,
            "lastExecutionAt": self.last_execution_at,
            "lastEventId": self.last_event_id,
            "dailyExecutionCount": self.daily_execution_count,
            "dailyVolumeUsd": self.daily_volume_usd,
            "dailyResetAt": self.daily_reset_at,
            "lastExecutionTxHash": self.last_execution_tx_hash,
        }

    def reset_daily_if_needed(self, now_ms: int) -> bool:
        """Zero daily counters on a UTC day change; True if reset"""
        if clock.utc_date_key(self.daily_reset_at) == clock.utc_date_key(now_ms):
            return False
        self.daily_execution_count = 0
        self.daily_volume_usd = 0.0
        self.daily_reset_at = now_ms
        return True


@dataclass
class EvaluationContext:
    trigger: str  # 'cron' | 'webhook' | 'manual'
    event_id: Optional[str] = None
    event_type: Optional[str] = None


@dataclass
class EvaluationResult:
    evaluated: bool
    skipped: bool
    skip_reason: Optional[str] = None
    has_drift: Optional[bool] = None
    drifts: List[Dict[str, Any]] = field(default_factory=list)
    executed: Optional[bool] = None
    execution_result: Optional[ExecutionResult] = None
    error: Optional[str] = None

    @classmethod
    def skip(cls, reason: str, error: str = None) -> "EvaluationResult":
        return cls(evaluated=False, skipped=True, skip_reason=reason, error=error)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"evaluated": self.evaluated, "skipped": self.skipped}
        if self.skip_reason:
            data["skipReason"] = self.skip_reason
        if self.has_drift is not None:
            data["hasDrift"] = self.has_drift
        if self.drifts:
            data["driftDetails"] = {"drifts": self.drifts}
        if self.executed is not None:
            data["executed"] = self.executed
        if self.execution_result is not None:
            data["executionResult"] = self.execution_result.to_dict()
        if self.error:
            data["error"] = self.error
        return data


def state_key(user_address: str) -> str:
    return f"{STATE_PREFIX}{user_address.lower()}"


async def load_state(store: KVStore, user_address: str) -> Optional[EvaluationState]:
    data = await get_json(store, state_key(user_address))
    if not isinstance(data, dict):
        return None
    return EvaluationState.from_dict(data)


async def save_state(store: KVStore, user_address: str, state: EvaluationState) -> None:
    await put_json(store, state_key(user_address), state.to_dict(), ttl_seconds=STATE_TTL_SECONDS)


def _rebalance_policy(policy) -> Optional[Policy]:
    if isinstance(policy, UnifiedPolicy):
        return policy.as_rebalance_policy()
    return policy


async def _execute_drift(
    env: AgentEnv,
    user_address: str,
    policy: Policy,
    drift: DriftResult,
    state: EvaluationState,
    now_ms: int,
) -> EvaluationResult:
    """Authorization, limit pre-check and dispatch for a detected drift"""
    drifts = [d.to_dict() for d in drift.drifts]

    def not_executed(error: str) -> EvaluationResult:
        logger.info(f"[Evaluate] {user_address}: not executed - {error}")
        return EvaluationResult(
            evaluated=True, skipped=False, has_drift=True, drifts=drifts, executed=False, error=error,
        )

    auth = await load_authorization(env.store, user_address)
    if auth is None:
        return not_executed("No authorization found for this address")
    if auth.is_expired(now_ms):
        return not_executed("Authorization has expired")

    # Placeholder per-trade estimate until a price oracle is wired in
    trade_usd = env.settings.estimated_trade_usd
    daily_spent = await get_daily_spent(env.store, user_address)
    if daily_spent + trade_usd > auth.max_daily_usd:
        return not_executed(
            f"Daily limit exceeded. Spent: ${daily_spent:.2f}, "
            f"Limit: ${format_usd_limit(auth.max_daily_usd)}, Requested: ${trade_usd:.2f}"
        )

    pair = drift.first_sell_buy_pair()
    if pair is None:
        return not_executed("No sell/buy pair to rebalance")
    sell, buy = pair

    validation = await validate_authorization(env.store, user_address, sell.token, buy.token, trade_usd)
    if not validation.valid:
        return not_executed(validation.error)

    result = await env.dispatcher.dispatch(TradeRequest(
        user_address=user_address,
        token_in=sell.token,
        token_out=buy.token,
        amount_in=sell.amount,
        max_slippage_bps=policy.max_slippage_bps,
    ))

    if result.success:
        state.last_execution_at = now_ms
        state.daily_execution_count += 1
        state.daily_volume_usd += trade_usd
        state.last_execution_tx_hash = result.tx_hash
        await track_spending(env.store, user_address, trade_usd)
        logger.info(
            f"[Evaluate] {user_address}: sold {sell.symbol} for {buy.symbol} via {result.execution_mode} "
            f"({result.tx_hash or result.user_op_hash})"
        )
    else:
        logger.warning(f"[Evaluate] {user_address}: {result.execution_mode} execution failed - {result.error}")

    return EvaluationResult(
        evaluated=True,
        skipped=False,
        has_drift=True,
        drifts=drifts,
        executed=result.success,
        execution_result=result,
        error=result.error,
    )


async def evaluate(env: AgentEnv, user_address: str, context: EvaluationContext) -> EvaluationResult:
    """Run one evaluation for a user"""
    store = env.store
    now_ms = clock.now_ms()

    state = await load_state(store, user_address) or EvaluationState.initial(now_ms)
    day_rolled = state.reset_daily_if_needed(now_ms)

    cooldown_ms = env.settings.evaluation_cooldown_seconds * 1000
    if now_ms - state.last_evaluation_at < cooldown_ms:
        logger.info(f"[Evaluate] Cooldown active for {user_address}, skipping")
        if day_rolled:
            await save_state(store, user_address, state)
        return EvaluationResult.skip(SKIP_COOLDOWN)

    if context.trigger == "webhook" and context.event_id and context.event_id == state.last_event_id:
        logger.info(f"[Evaluate] Duplicate event {context.event_id} for {user_address}, skipping")
        return EvaluationResult.skip(SKIP_DUPLICATE_EVENT)

    policy = _rebalance_policy(await load_policy(store, user_address))
    if policy is None:
        logger.info(f"[Evaluate] No policy found for {user_address}, skipping")
        return EvaluationResult.skip(SKIP_NO_POLICY)

    logger.info(f"[Evaluate] Running drift check for {user_address} (trigger: {context.trigger})")
    drift = await check_drift(env.reader, user_address, policy)

    state.last_evaluation_at = now_ms
    if context.event_id:
        state.last_event_id = context.event_id

    if not drift.has_drift:
        await save_state(store, user_address, state)
        return EvaluationResult(evaluated=True, skipped=False, has_drift=False, executed=False)

    result = await _execute_drift(env, user_address, policy, drift, state, now_ms)
    await save_state(store, user_address, state)
    return result
