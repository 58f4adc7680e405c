"""
Drift Detector
Compares a wallet's current allocation against policy targets.

Balances are normalized to 18 decimals before summing so that tokens with
different decimals are comparable. Percentages use integer math:
    percentage = (normalized * 10000 // total) / 100
A token drifts when |percentage - target| is strictly greater than the
policy's driftThreshold.

Also hosts standalone threshold-band and periodic trigger helpers for
callers that want those checks. The evaluation loop does not consult them:
every legacy policy type, threshold-rebalance and periodic-rebalance
included, is evaluated by drift alone.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from agents.policy import Policy, TokenAllocation
from infrastructure import clock

logger = logging.getLogger(__name__)

NORMALIZED_DECIMALS = 18
DEFAULT_REBALANCE_INTERVAL = 86400


class BalanceReader(Protocol):
    async def get_balance(self, token: str, owner: str) -> int:
        ...


@dataclass
class Allocation:
    token: str
    symbol: str
    balance: int
    normalized_balance: int
    percentage: float
    target_percentage: float

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "symbol": self.symbol,
            "balance": str(self.balance),
            "normalizedBalance": str(self.normalized_balance),
            "percentage": self.percentage,
            "targetPercentage": self.target_percentage,
        }


@dataclass
class DriftItem:
    token: str
    symbol: str
    current_percentage: float
    target_percentage: float
    drift: float
    action: str  # 'buy' | 'sell'
    amount: int  # token-native units
    decimals: int = NORMALIZED_DECIMALS

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "symbol": self.symbol,
            "currentPercentage": self.current_percentage,
            "targetPercentage": self.target_percentage,
            "drift": self.drift,
            "action": self.action,
            "amount": str(self.amount),
        }


@dataclass
class DriftResult:
    has_drift: bool
    drifts: List[DriftItem] = field(default_factory=list)
    allocations: List[Allocation] = field(default_factory=list)
    total_value_normalized: int = 0

    def first_sell_buy_pair(self):
        """(sell, buy) drift items, or None when either side is missing"""
        sell = next((d for d in self.drifts if d.action == "sell"), None)
        buy = next((d for d in self.drifts if d.action == "buy"), None)
        if sell is None or buy is None:
            return None
        return sell, buy

    def to_dict(self) -> dict:
        return {
            "hasDrift": self.has_drift,
            "drifts": [d.to_dict() for d in self.drifts],
            "allocations": [a.to_dict() for a in self.allocations],
            "totalValueNormalized": str(self.total_value_normalized),
        }


def normalize(amount: int, decimals: int) -> int:
    if decimals <= NORMALIZED_DECIMALS:
        return amount * 10 ** (NORMALIZED_DECIMALS - decimals)
    return amount // 10 ** (decimals - NORMALIZED_DECIMALS)


def denormalize(amount: int, decimals: int) -> int:
    if decimals <= NORMALIZED_DECIMALS:
        return amount // 10 ** (NORMALIZED_DECIMALS - decimals)
    return amount * 10 ** (decimals - NORMALIZED_DECIMALS)


def percentage_of(part: int, total: int) -> float:
    return (part * 10000 // total) / 100


async def _read_balance(reader: BalanceReader, token: TokenAllocation, owner: str) -> int:
    try:
        return int(await reader.get_balance(token.address, owner))
    except Exception as e:
        logger.warning(f"[Drift] Balance read failed for {token.symbol} ({token.address}): {e}")
        return 0


def compute_drift(policy: Policy, balances: List[int]) -> DriftResult:
    """Pure drift computation over already-read native balances"""
    normalized = [normalize(b, t.decimals) for b, t in zip(balances, policy.tokens)]
    total = sum(normalized)

    if total == 0:
        return DriftResult(has_drift=False, total_value_normalized=0)

    allocations = []
    drifts = []
    for token, balance, norm in zip(policy.tokens, balances, normalized):
        target = float(token.target_percentage or 0)
        percentage = percentage_of(norm, total)
        allocations.append(Allocation(
            token=token.address,
            symbol=token.symbol,
            balance=balance,
            normalized_balance=norm,
            percentage=percentage,
            target_percentage=target,
        ))

        drift = round(abs(percentage - target), 6)
        if drift <= policy.drift_threshold:
            continue

        target_normalized = total * int(target * 100) // 10000
        amount = denormalize(abs(norm - target_normalized), token.decimals)
        drifts.append(DriftItem(
            token=token.address,
            symbol=token.symbol,
            current_percentage=percentage,
            target_percentage=target,
            drift=drift,
            action="sell" if percentage > target else "buy",
            amount=amount,
            decimals=token.decimals,
        ))

    return DriftResult(
        has_drift=len(drifts) > 0,
        drifts=drifts,
        allocations=allocations,
        total_value_normalized=total,
    )


async def check_drift(reader: BalanceReader, user_address: str, policy: Policy) -> DriftResult:
    """
    Read every policy token balance for user_address and compute drift.

    Unreadable balances count as 0; one bad read never fails the check.
    """
    balances = await asyncio.gather(*[
        _read_balance(reader, token, user_address) for token in policy.tokens
    ])
    result = compute_drift(policy, list(balances))
    if result.has_drift:
        summary = ", ".join(f"{d.action} {d.symbol} ({d.drift:.2f}%)" for d in result.drifts)
        logger.info(f"[Drift] {user_address}: {summary}")
    return result


# ============================================
# THRESHOLD / PERIODIC TRIGGERS
# ============================================

@dataclass
class ThresholdViolation:
    token: str
    symbol: str
    current_percentage: float
    threshold: float
    direction: str  # 'above' | 'below'


def calculate_thresholds(target_percentage: float, drift_threshold: float) -> dict:
    return {
        "min": max(0.0, target_percentage - drift_threshold),
        "max": min(100.0, target_percentage + drift_threshold),
    }


def check_thresholds(tokens: List[TokenAllocation], balances: List[int], thresholds: dict) -> List[ThresholdViolation]:
    """Tokens whose share sits outside the [min, max] band"""
    total = sum(balances)
    if total == 0:
        return []

    violations = []
    for token, balance in zip(tokens, balances):
        percentage = percentage_of(balance, total)
        if percentage > thresholds["max"]:
            violations.append(ThresholdViolation(token.address, token.symbol, percentage, thresholds["max"], "above"))
        elif percentage < thresholds["min"]:
            violations.append(ThresholdViolation(token.address, token.symbol, percentage, thresholds["min"], "below"))
    return violations


def check_periodic_trigger(policy: Policy, last_rebalance_ts: int, now_s: Optional[int] = None) -> dict:
    interval = policy.rebalance_interval or DEFAULT_REBALANCE_INTERVAL
    now_s = clock.now_seconds() if now_s is None else now_s
    next_rebalance = last_rebalance_ts + interval
    return {
        "shouldTrigger": now_s >= next_rebalance,
        "lastRebalance": last_rebalance_ts,
        "nextRebalance": next_rebalance,
        "intervalSeconds": interval,
    }
