# Config package
from config.settings import Settings, get_settings
from config.contracts import (
    TOKENS,
    ENTRYPOINT_V06,
    ERC20_ABI,
    INTENT_ROUTER_ABI,
    FEE_LOCKER_ABI,
    DELEGATION_ROUTER_ABI,
    SMART_ACCOUNT_ABI,
)
from config.pools import (
    PoolConfig,
    NoPoolConfiguredError,
    resolve_pool,
    get_pool_for_pair,
    list_supported_pairs,
)
