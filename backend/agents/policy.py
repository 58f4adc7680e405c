"""
Treasury Policies
Target allocations and the richer unified policy with toggleable sub-policies.

Legacy policy types:
- stablecoin-rebalance / threshold-rebalance / periodic-rebalance

Unified policy ('unified'):
- stablecoinRebalance: drift-triggered rebalancing over a token set
- feeClaiming: claim agent-token fees on a frequency or WETH threshold
- wethStrategy: split of claimed WETH (compound / toStables / hold)
- tokenStrategy: exit agent tokens that lost more than loserThreshold in 24h
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

LEGACY_POLICY_TYPES = ("stablecoin-rebalance", "threshold-rebalance", "periodic-rebalance")
UNIFIED_POLICY_TYPE = "unified"
CLAIM_FREQUENCIES = ("daily", "weekly", "monthly", "threshold")

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@dataclass
class TokenAllocation:
    address: str
    symbol: str
    target_percentage: float
    decimals: int = 18

    @classmethod
    def from_dict(cls, data: dict) -> "TokenAllocation":
        target = data.get("targetPercentage")
        decimals = data.get("decimals")
        return cls(
            address=data.get("address", ""),
            symbol=data.get("symbol", ""),
            target_percentage=float(target) if target is not None else None,
            decimals=int(decimals) if decimals is not None else 18,
        )

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "targetPercentage": self.target_percentage,
            "decimals": self.decimals,
        }


@dataclass
class Policy:
    """Legacy single-purpose rebalance policy"""
    type: str
    tokens: List[TokenAllocation]
    drift_threshold: float = 5.0
    max_slippage_bps: int = 50
    max_daily_usd: Optional[float] = None
    rebalance_interval: Optional[int] = None  # seconds, periodic-rebalance only

    @classmethod
    def from_dict(cls, data: dict) -> "Policy":
        return cls(
            type=data.get("type", ""),
            tokens=[TokenAllocation.from_dict(t) for t in data.get("tokens") or []],
            drift_threshold=float(data.get("driftThreshold", 5)),
            max_slippage_bps=int(data.get("maxSlippageBps", 50)),
            max_daily_usd=data.get("maxDailyUsd"),
            rebalance_interval=data.get("rebalanceInterval"),
        )

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "tokens": [t.to_dict() for t in self.tokens],
            "driftThreshold": self.drift_threshold,
            "maxSlippageBps": self.max_slippage_bps,
        }
        if self.max_daily_usd is not None:
            data["maxDailyUsd"] = self.max_daily_usd
        if self.rebalance_interval is not None:
            data["rebalanceInterval"] = self.rebalance_interval
        return data


@dataclass
class StablecoinRebalance:
    enabled: bool
    tokens: List[TokenAllocation]
    drift_threshold: float = 5.0


@dataclass
class FeeClaiming:
    enabled: bool
    frequency: str = "daily"
    min_threshold_weth: str = "0.1"
    tokens: List[str] = field(default_factory=list)


@dataclass
class WethStrategy:
    compound: int = 0
    to_stables: int = 0
    hold: int = 100


@dataclass
class TokenStrategy:
    enabled: bool
    sell_losers: bool = False
    loser_threshold: float = 30.0
    hold_winners: bool = True
    winner_threshold: float = 20.0


@dataclass
class UnifiedPolicy:
    max_slippage_bps: int = 50
    max_daily_usd: Optional[float] = None
    stablecoin_rebalance: Optional[StablecoinRebalance] = None
    fee_claiming: Optional[FeeClaiming] = None
    weth_strategy: Optional[WethStrategy] = None
    token_strategy: Optional[TokenStrategy] = None
    type: str = UNIFIED_POLICY_TYPE

    @classmethod
    def from_dict(cls, data: dict) -> "UnifiedPolicy":
        policy = cls(
            max_slippage_bps=int(data.get("maxSlippageBps", 50)),
            max_daily_usd=data.get("maxDailyUsd"),
        )

        sr = data.get("stablecoinRebalance")
        if sr:
            policy.stablecoin_rebalance = StablecoinRebalance(
                enabled=bool(sr.get("enabled")),
                tokens=[TokenAllocation.from_dict(t) for t in sr.get("tokens") or []],
                drift_threshold=float(sr.get("driftThreshold", 5)),
            )

        fc = data.get("feeClaiming")
        if fc:
            policy.fee_claiming = FeeClaiming(
                enabled=bool(fc.get("enabled")),
                frequency=fc.get("frequency", "daily"),
                min_threshold_weth=str(fc.get("minThresholdWeth", "0.1")),
                tokens=list(fc.get("tokens") or []),
            )

        ws = data.get("wethStrategy")
        if ws:
            policy.weth_strategy = WethStrategy(
                compound=int(ws.get("compound", 0)),
                to_stables=int(ws.get("toStables", 0)),
                hold=int(ws.get("hold", 0)),
            )

        ts = data.get("tokenStrategy")
        if ts:
            policy.token_strategy = TokenStrategy(
                enabled=bool(ts.get("enabled")),
                sell_losers=bool(ts.get("sellLosers", False)),
                loser_threshold=float(ts.get("loserThreshold", 30)),
                hold_winners=bool(ts.get("holdWinners", True)),
                winner_threshold=float(ts.get("winnerThreshold", 20)),
            )

        return policy

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"type": self.type, "maxSlippageBps": self.max_slippage_bps}
        if self.max_daily_usd is not None:
            data["maxDailyUsd"] = self.max_daily_usd
        if self.stablecoin_rebalance:
            sr = self.stablecoin_rebalance
            data["stablecoinRebalance"] = {
                "enabled": sr.enabled,
                "tokens": [t.to_dict() for t in sr.tokens],
                "driftThreshold": sr.drift_threshold,
            }
        if self.fee_claiming:
            fc = self.fee_claiming
            data["feeClaiming"] = {
                "enabled": fc.enabled,
                "frequency": fc.frequency,
                "minThresholdWeth": fc.min_threshold_weth,
                "tokens": fc.tokens,
            }
        if self.weth_strategy:
            ws = self.weth_strategy
            data["wethStrategy"] = {"compound": ws.compound, "toStables": ws.to_stables, "hold": ws.hold}
        if self.token_strategy:
            ts = self.token_strategy
            data["tokenStrategy"] = {
                "enabled": ts.enabled,
                "sellLosers": ts.sell_losers,
                "loserThreshold": ts.loser_threshold,
                "holdWinners": ts.hold_winners,
                "winnerThreshold": ts.winner_threshold,
            }
        return data

    def as_rebalance_policy(self) -> Optional[Policy]:
        """Project the enabled stablecoin sub-policy into a legacy Policy"""
        sr = self.stablecoin_rebalance
        if not sr or not sr.enabled:
            return None
        return Policy(
            type="stablecoin-rebalance",
            tokens=sr.tokens,
            drift_threshold=sr.drift_threshold,
            max_slippage_bps=self.max_slippage_bps,
            max_daily_usd=self.max_daily_usd,
        )


AnyPolicy = Union[Policy, UnifiedPolicy]


def is_unified_policy(policy: AnyPolicy) -> bool:
    return policy.type == UNIFIED_POLICY_TYPE


def parse_policy(data: dict) -> AnyPolicy:
    """Build a policy object from its stored JSON shape"""
    if data.get("type") == UNIFIED_POLICY_TYPE:
        return UnifiedPolicy.from_dict(data)
    return Policy.from_dict(data)


# ============================================
# VALIDATION
# ============================================

def is_valid_address(address: str) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def _validate_tokens(tokens: List[TokenAllocation], errors: List[str]):
    for index, token in enumerate(tokens):
        if not token.address:
            errors.append(f"Token {index}: address is required")
        elif not is_valid_address(token.address):
            errors.append(f"Token {index}: invalid address format")

        if token.target_percentage is None:
            errors.append(f"Token {index}: targetPercentage is required")
        elif token.target_percentage < 0 or token.target_percentage > 100:
            errors.append(f"Token {index}: targetPercentage must be between 0 and 100")

    total = sum(t.target_percentage or 0 for t in tokens)
    if abs(total - 100) > 0.01:
        errors.append(f"Token allocations must sum to 100%, got {total}%")


def _validate_limits(drift_threshold, max_slippage_bps, max_daily_usd, errors: List[str]):
    if drift_threshold is not None and not 0.1 <= drift_threshold <= 50:
        errors.append("driftThreshold must be between 0.1 and 50 percent")
    if max_slippage_bps is not None and not 1 <= max_slippage_bps <= 1000:
        errors.append("maxSlippageBps must be between 1 and 1000 (0.01% to 10%)")
    if max_daily_usd is not None and max_daily_usd < 0:
        errors.append("maxDailyUsd must be non-negative")


def validate_weth_strategy(strategy: Optional[WethStrategy]) -> bool:
    if strategy is None:
        return True
    return strategy.compound + strategy.to_stables + strategy.hold == 100


def validate_policy(policy: AnyPolicy) -> Tuple[bool, List[str]]:
    """Returns (valid, errors)"""
    errors: List[str] = []

    if not policy.type:
        errors.append("Policy type is required")

    if isinstance(policy, UnifiedPolicy):
        sr = policy.stablecoin_rebalance
        if sr and sr.enabled:
            _validate_tokens(sr.tokens, errors)
            _validate_limits(sr.drift_threshold, None, None, errors)
        fc = policy.fee_claiming
        if fc and fc.enabled:
            if fc.frequency not in CLAIM_FREQUENCIES:
                errors.append(f"feeClaiming.frequency must be one of {', '.join(CLAIM_FREQUENCIES)}")
            try:
                if float(fc.min_threshold_weth) < 0:
                    errors.append("feeClaiming.minThresholdWeth must be non-negative")
            except ValueError:
                errors.append("feeClaiming.minThresholdWeth must be a decimal string")
            for token in fc.tokens:
                if not is_valid_address(token):
                    errors.append(f"feeClaiming token {token}: invalid address format")
        if not validate_weth_strategy(policy.weth_strategy):
            errors.append("wethStrategy percentages must sum to 100")
        _validate_limits(None, policy.max_slippage_bps, policy.max_daily_usd, errors)
    else:
        if policy.type and policy.type not in LEGACY_POLICY_TYPES:
            errors.append(f"Unknown policy type: {policy.type}")
        _validate_tokens(policy.tokens, errors)
        _validate_limits(policy.drift_threshold, policy.max_slippage_bps, policy.max_daily_usd, errors)

    return len(errors) == 0, errors


# ============================================
# TEMPLATES
# ============================================

POLICY_TEMPLATES: Dict[str, Dict[str, float]] = {
    "conservative": {"drift_threshold": 10, "max_slippage_bps": 25, "max_daily_usd": 50000},
    "moderate": {"drift_threshold": 5, "max_slippage_bps": 50, "max_daily_usd": 100000},
    "aggressive": {"drift_threshold": 2, "max_slippage_bps": 100, "max_daily_usd": 500000},
}


def apply_template(partial: dict, template_name: str) -> Policy:
    """Fill unset fields of a partial policy dict from a named template"""
    template = POLICY_TEMPLATES.get(template_name)
    if template is None:
        raise ValueError(f"Unknown template: {template_name}")

    def pick(key: str, field_name: str, default):
        value = partial.get(key)
        if value is not None:
            return value
        return template.get(field_name, default)

    return Policy(
        type=partial.get("type") or "stablecoin-rebalance",
        tokens=[TokenAllocation.from_dict(t) for t in partial.get("tokens") or []],
        drift_threshold=float(pick("driftThreshold", "drift_threshold", 5)),
        max_slippage_bps=int(pick("maxSlippageBps", "max_slippage_bps", 50)),
        max_daily_usd=pick("maxDailyUsd", "max_daily_usd", None),
    )
