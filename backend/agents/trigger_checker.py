"""
Unified Trigger Checker
Evaluates the independent trigger families of a unified policy and returns
a priority-ordered action list.

Order of evaluation (each gated by its own enabled flag):
1. Fee-claim threshold  -> claim-fees  (priority 1)
2. Stablecoin drift     -> rebalance   (priority 2)
3. Token exit on loss   -> exit-token  (priority 3)

Actions are sorted by priority (stable, so ties keep discovery order).
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from agents.drift_detector import check_drift
from agents.env import AgentEnv
from agents.policy import FeeClaiming, TokenStrategy, UnifiedPolicy
from infrastructure import clock
from infrastructure.kv_store import KVStore
from services.agent_registry import get_agent_wallets

logger = logging.getLogger(__name__)

DEFAULT_MIN_THRESHOLD_WETH = "0.1"
WEI_PER_ETH = 10 ** 18

CLAIM_INTERVALS_MS = {
    "daily": 24 * 60 * 60 * 1000,
    "weekly": 7 * 24 * 60 * 60 * 1000,
    "monthly": 30 * 24 * 60 * 60 * 1000,
}


class ActionType(Enum):
    CLAIM_FEES = "claim-fees"
    REBALANCE = "rebalance"
    EXIT_TOKEN = "exit-token"
    COMPOUND = "compound"


ACTION_PRIORITY = {
    ActionType.CLAIM_FEES: 1,
    ActionType.REBALANCE: 2,
    ActionType.EXIT_TOKEN: 3,
    ActionType.COMPOUND: 4,
}


@dataclass
class TriggerAction:
    type: ActionType
    params: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0

    @classmethod
    def of(cls, action_type: ActionType, **params) -> "TriggerAction":
        return cls(type=action_type, params=params, priority=ACTION_PRIORITY[action_type])

    def to_dict(self) -> dict:
        return {"type": self.type.value, "params": self.params, "priority": self.priority}


@dataclass
class TriggerResult:
    triggered: bool
    reason: str
    actions: List[TriggerAction]
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "triggered": self.triggered,
            "reason": self.reason,
            "actions": [a.to_dict() for a in self.actions],
            "timestamp": self.timestamp,
        }


@dataclass
class FeeThresholdResult:
    should_claim: bool
    claimable_tokens: List[str]
    total_weth: str
    total_weth_wei: int


@dataclass
class ExitConditionResult:
    should_exit: bool
    tokens_to_exit: List[Dict[str, Any]]


def parse_weth(amount: Optional[str]) -> int:
    """Decimal WETH string -> wei"""
    try:
        return int(Decimal(amount or DEFAULT_MIN_THRESHOLD_WETH) * WEI_PER_ETH)
    except InvalidOperation:
        logger.warning(f"[Triggers] Bad WETH amount {amount!r}, using {DEFAULT_MIN_THRESHOLD_WETH}")
        return int(Decimal(DEFAULT_MIN_THRESHOLD_WETH) * WEI_PER_ETH)


def format_weth(wei: int, places: int = 4) -> str:
    return f"{Decimal(wei) / WEI_PER_ETH:.{places}f}"


async def check_fee_threshold(env: AgentEnv, user_address: str, config: FeeClaiming) -> FeeThresholdResult:
    """Sum claimable WETH over the user's agent wallets and tokens"""
    agent_wallets = await get_agent_wallets(env.store, user_address)

    if not agent_wallets and not config.tokens:
        return FeeThresholdResult(False, [], "0", 0)

    tokens = list(config.tokens)
    if not tokens and agent_wallets:
        discovered = await env.discovery.discover_agent_tokens(user_address, agent_wallets)
        tokens = [t.address for t in discovered]

    total_wei = 0
    claimable: List[str] = []
    for token in tokens:
        for wallet in agent_wallets:
            try:
                fees = int(await env.reader.get_claimable_fee(token, wallet))
            except Exception as e:
                logger.warning(f"[Triggers] Fee read failed for {token} / {wallet}: {e}")
                continue
            if fees > 0:
                total_wei += fees
                if token not in claimable:
                    claimable.append(token)

    threshold = parse_weth(config.min_threshold_weth)
    return FeeThresholdResult(
        should_claim=total_wei >= threshold,
        claimable_tokens=claimable,
        total_weth=format_weth(total_wei),
        total_weth_wei=total_wei,
    )


async def check_exit_conditions(env: AgentEnv, user_address: str, config: TokenStrategy) -> ExitConditionResult:
    """Agent tokens down more than loserThreshold over 24h"""
    if not config.enabled or not config.sell_losers:
        return ExitConditionResult(False, [])

    agent_wallets = await get_agent_wallets(env.store, user_address)
    tokens = await env.discovery.discover_agent_tokens(user_address, agent_wallets)

    to_exit = []
    for token in tokens:
        change = token.price_change_24h
        if change is None or change >= -config.loser_threshold:
            continue
        to_exit.append({
            "address": token.address,
            "symbol": token.symbol,
            "priceChange": change,
            "reason": f"Down {abs(change):.1f}% (threshold: {config.loser_threshold:g}%)",
        })

    return ExitConditionResult(should_exit=len(to_exit) > 0, tokens_to_exit=to_exit)


async def check_all_triggers(env: AgentEnv, user_address: str, policy: UnifiedPolicy) -> TriggerResult:
    actions: List[TriggerAction] = []
    reasons: List[str] = []
    timestamp = clock.now_ms()

    if policy.fee_claiming and policy.fee_claiming.enabled:
        fee = await check_fee_threshold(env, user_address, policy.fee_claiming)
        if fee.should_claim:
            actions.append(TriggerAction.of(
                ActionType.CLAIM_FEES,
                tokens=fee.claimable_tokens,
                totalWeth=fee.total_weth,
            ))
            reasons.append(f"Fee threshold met: {fee.total_weth} WETH claimable")

    rebalance_policy = policy.as_rebalance_policy()
    if rebalance_policy and rebalance_policy.tokens:
        drift = await check_drift(env.reader, user_address, rebalance_policy)
        if drift.has_drift:
            actions.append(TriggerAction.of(
                ActionType.REBALANCE,
                drifts=[d.to_dict() for d in drift.drifts],
                tokens=[t.to_dict() for t in rebalance_policy.tokens],
            ))
            reasons.append(f"Drift threshold exceeded for {len(drift.drifts)} token(s)")

    if policy.token_strategy and policy.token_strategy.enabled and policy.token_strategy.sell_losers:
        exit_result = await check_exit_conditions(env, user_address, policy.token_strategy)
        if exit_result.should_exit:
            actions.append(TriggerAction.of(ActionType.EXIT_TOKEN, tokens=exit_result.tokens_to_exit))
            reasons.append(f"Exit trigger: {len(exit_result.tokens_to_exit)} underperforming token(s)")

    actions.sort(key=lambda a: a.priority)

    return TriggerResult(
        triggered=len(actions) > 0,
        reason="; ".join(reasons) or "No triggers fired",
        actions=actions,
        timestamp=timestamp,
    )


# ============================================
# CLAIM FREQUENCY
# ============================================

def should_claim_by_frequency(frequency: str, last_claim_ms: Optional[int], now_ms: int = None) -> bool:
    if frequency == "threshold":
        return True
    if not last_claim_ms:
        return True
    interval = CLAIM_INTERVALS_MS.get(frequency)
    if interval is None:
        return False
    now_ms = clock.now_ms() if now_ms is None else now_ms
    return now_ms - last_claim_ms >= interval


def _last_claim_key(user_address: str) -> str:
    return f"lastClaim:{user_address.lower()}"


async def get_last_claim_time(store: KVStore, user_address: str) -> Optional[int]:
    raw = await store.get(_last_claim_key(user_address))
    return int(raw) if raw else None


async def save_last_claim_time(store: KVStore, user_address: str, timestamp_ms: int) -> None:
    await store.put(_last_claim_key(user_address), str(timestamp_ms))
