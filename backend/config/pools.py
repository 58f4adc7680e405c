"""
Pool Registry
Uniswap v4 pools initialized with the receipt hook.

Only pools listed here may be used for agent-executed swaps; there is no
fallback to a guessed pool.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Tuple

from config.contracts import TOKENS, RECEIPT_HOOK


class NoPoolConfiguredError(Exception):
    """Raised when a token pair has no registered pool"""

    def __init__(self, token_a: str, token_b: str):
        self.token_a = token_a
        self.token_b = token_b
        super().__init__(
            f"No pool configured for pair: {token_a}/{token_b}. "
            f"Available pairs: {', '.join(list_supported_pairs())}"
        )


@dataclass(frozen=True)
class PoolConfig:
    currency0: str
    currency1: str
    fee: int
    tick_spacing: int
    hooks: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tickSpacing"] = data.pop("tick_spacing")
        return data


def _sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    # currency0 < currency1
    if token_a.lower() < token_b.lower():
        return token_a, token_b
    return token_b, token_a


def pool_key(token_a: str, token_b: str) -> str:
    token0, token1 = _sort_tokens(token_a, token_b)
    return f"{token0.lower()}-{token1.lower()}"


SUPPORTED_POOLS: Dict[str, PoolConfig] = {
    # DAI/USDC 0.05%
    pool_key(TOKENS["DAI"], TOKENS["USDC"]): PoolConfig(
        currency0=TOKENS["DAI"],
        currency1=TOKENS["USDC"],
        fee=500,
        tick_spacing=10,
        hooks=RECEIPT_HOOK,
    ),
    # WETH/USDC 0.3%
    pool_key(TOKENS["WETH"], TOKENS["USDC"]): PoolConfig(
        currency0=TOKENS["WETH"],
        currency1=TOKENS["USDC"],
        fee=3000,
        tick_spacing=60,
        hooks=RECEIPT_HOOK,
    ),
}


def get_pool_for_pair(token_a: str, token_b: str) -> Optional[PoolConfig]:
    """Pool for a pair in either order, or None"""
    return SUPPORTED_POOLS.get(pool_key(token_a, token_b))


def resolve_pool(token_a: str, token_b: str) -> PoolConfig:
    """Pool for a pair; raises NoPoolConfiguredError if not registered"""
    pool = get_pool_for_pair(token_a, token_b)
    if pool is None:
        raise NoPoolConfiguredError(token_a, token_b)
    return pool


def is_pair_supported(token_a: str, token_b: str) -> bool:
    return get_pool_for_pair(token_a, token_b) is not None


def _token_symbol(address: str) -> str:
    for symbol, token in TOKENS.items():
        if token.lower() == address.lower():
            return symbol
    return address[:10]


def list_supported_pairs() -> List[str]:
    """Human-readable pairs, e.g. 'DAI/USDC (0.05%)'"""
    return [
        f"{_token_symbol(pool.currency0)}/{_token_symbol(pool.currency1)} ({pool.fee / 10000}%)"
        for pool in SUPPORTED_POOLS.values()
    ]
