"""
Treasury Agent Settings
Environment-driven runtime configuration.

All values come from the process environment (optionally a .env file).
Modules receive a Settings instance instead of reading os.environ directly,
so tests can build one with explicit values.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_STRATEGY_ID = "0x" + "0" * 63 + "1"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass
class Settings:
    """Runtime configuration for the treasury agent"""

    chain_id: int = 84532
    rpc_url: str = "https://sepolia.base.org"

    # Execution (signed intent mode)
    intent_router: str = ""
    private_key: str = ""
    strategy_id: str = DEFAULT_STRATEGY_ID
    intent_ttl_seconds: int = 300

    # Execution (session key mode)
    bundler_url: str = ""
    entrypoint_address: str = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
    userop_receipt_timeout_seconds: float = 60.0
    userop_poll_interval_seconds: float = 2.0

    # Fee claiming / delegation
    delegation_router: str = ""
    fee_locker_address: str = "0xF3622742b1E446D92e45E22923Ef11C2fcD55D68"
    weth_address: str = "0x4200000000000000000000000000000000000006"
    treasury_address: str = ""
    treasury_private_key: str = ""
    service_fee_address: str = ""

    # Token discovery
    clawnch_api_url: str = "https://clawn.ch/api"

    # Evaluation
    estimated_trade_usd: float = 100.0
    evaluation_cooldown_seconds: int = 60
    cron_interval_seconds: int = 0

    # Storage
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_kv_table: str = "treasury_kv"

    # Agent key encryption (Fernet)
    agent_encryption_key: str = ""
    secret_key: str = "treasury-agent-dev-key-change-in-production"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            chain_id=_env_int("CHAIN_ID", defaults.chain_id),
            rpc_url=os.getenv("RPC_URL", defaults.rpc_url),
            intent_router=os.getenv("INTENT_ROUTER", ""),
            private_key=os.getenv("PRIVATE_KEY", ""),
            strategy_id=os.getenv("STRATEGY_ID") or DEFAULT_STRATEGY_ID,
            intent_ttl_seconds=_env_int("INTENT_TTL_SECONDS", defaults.intent_ttl_seconds),
            bundler_url=os.getenv("ZERODEV_BUNDLER_URL", ""),
            entrypoint_address=os.getenv("ENTRYPOINT_ADDRESS", defaults.entrypoint_address),
            userop_receipt_timeout_seconds=_env_float(
                "USEROP_RECEIPT_TIMEOUT_SECONDS", defaults.userop_receipt_timeout_seconds
            ),
            userop_poll_interval_seconds=_env_float(
                "USEROP_POLL_INTERVAL_SECONDS", defaults.userop_poll_interval_seconds
            ),
            delegation_router=os.getenv("DELEGATION_ROUTER", ""),
            fee_locker_address=os.getenv("FEE_LOCKER_ADDRESS", defaults.fee_locker_address),
            weth_address=os.getenv("WETH_ADDRESS", defaults.weth_address),
            treasury_address=os.getenv("TREASURY_ADDRESS", ""),
            treasury_private_key=os.getenv("TREASURY_PRIVATE_KEY", ""),
            service_fee_address=os.getenv("SERVICE_FEE_ADDRESS", ""),
            clawnch_api_url=os.getenv("CLAWNCH_API_URL", defaults.clawnch_api_url).rstrip("/"),
            # Placeholder until a price oracle is wired in
            estimated_trade_usd=_env_float("ESTIMATED_TRADE_USD", defaults.estimated_trade_usd),
            evaluation_cooldown_seconds=_env_int(
                "EVALUATION_COOLDOWN_SECONDS", defaults.evaluation_cooldown_seconds
            ),
            cron_interval_seconds=_env_int("CRON_INTERVAL_SECONDS", 0),
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_key=os.getenv("SUPABASE_KEY", ""),
            supabase_kv_table=os.getenv("SUPABASE_KV_TABLE", defaults.supabase_kv_table),
            agent_encryption_key=os.getenv("AGENT_ENCRYPTION_KEY", ""),
            secret_key=os.getenv("SECRET_KEY", defaults.secret_key),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **kwargs) -> "Settings":
        return replace(self, **kwargs)

    @property
    def has_bundler(self) -> bool:
        return bool(self.bundler_url)

    @property
    def has_legacy_treasury(self) -> bool:
        return bool(self.treasury_address)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
