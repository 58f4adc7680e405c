"""
Intent Router Client
EIP-712 trade intents for the OikonomosIntentRouter.

An intent authorizes one swap on the user's behalf:
    Intent(user, tokenIn, tokenOut, amountIn, maxSlippage, deadline, strategyId, nonce)
It is signed off-chain with the agent key and submitted with the pool key
of the pair through executeIntent(intent, signature, poolKey, strategyData).
"""

import logging
from typing import Any, Dict

from eth_abi import encode
from eth_account import Account
from web3 import Web3

from config.contracts import INTENT_ROUTER_ABI
from config.pools import PoolConfig
from config.settings import Settings, get_settings
from infrastructure import clock
from integrations.transactions import run_sync, send_contract_tx

logger = logging.getLogger(__name__)

DOMAIN_NAME = "OikonomosIntentRouter"
DOMAIN_VERSION = "1"

INTENT_TYPES = {
    "Intent": [
        {"name": "user", "type": "address"},
        {"name": "tokenIn", "type": "address"},
        {"name": "tokenOut", "type": "address"},
        {"name": "amountIn", "type": "uint256"},
        {"name": "maxSlippage", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
        {"name": "strategyId", "type": "bytes32"},
        {"name": "nonce", "type": "uint256"},
    ],
}

_INTENT_TUPLE_TYPE = "(address,address,address,uint256,uint256,uint256,bytes32,uint256)"
_POOL_KEY_TUPLE_TYPE = "(address,address,uint24,int24,address)"
EXECUTE_INTENT_SIGNATURE = f"executeIntent({_INTENT_TUPLE_TYPE},bytes,{_POOL_KEY_TUPLE_TYPE},bytes)"
EXECUTE_INTENT_SELECTOR = Web3.keccak(text=EXECUTE_INTENT_SIGNATURE)[:4]


def strategy_id_bytes(strategy_id: str) -> bytes:
    raw = strategy_id[2:] if strategy_id.startswith("0x") else strategy_id
    return bytes.fromhex(raw.rjust(64, "0"))


def pool_struct(pool: PoolConfig) -> tuple:
    return (
        Web3.to_checksum_address(pool.currency0),
        Web3.to_checksum_address(pool.currency1),
        pool.fee,
        pool.tick_spacing,
        Web3.to_checksum_address(pool.hooks),
    )


class IntentRouterClient:
    """Nonce lookup, intent signing and submission against the intent router"""

    def __init__(self, settings: Settings = None, w3: Web3 = None):
        self.settings = settings or get_settings()
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.settings.rpc_url))

    @property
    def router_address(self) -> str:
        return Web3.to_checksum_address(self.settings.intent_router)

    def _contract(self):
        return self.w3.eth.contract(address=self.router_address, abi=INTENT_ROUTER_ABI)

    def domain(self) -> Dict[str, Any]:
        return {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": self.settings.chain_id,
            "verifyingContract": self.router_address,
        }

    async def get_nonce(self, user_address: str) -> int:
        fn = self._contract().functions.getNonce(Web3.to_checksum_address(user_address)).call
        return int(await run_sync(fn))

    def build_intent(
        self,
        user_address: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        max_slippage_bps: int,
        nonce: int,
    ) -> Dict[str, Any]:
        return {
            "user": Web3.to_checksum_address(user_address),
            "tokenIn": Web3.to_checksum_address(token_in),
            "tokenOut": Web3.to_checksum_address(token_out),
            "amountIn": int(amount_in),
            "maxSlippage": int(max_slippage_bps),
            "deadline": clock.now_seconds() + self.settings.intent_ttl_seconds,
            "strategyId": strategy_id_bytes(self.settings.strategy_id),
            "nonce": int(nonce),
        }

    def sign_intent(self, intent: Dict[str, Any], private_key: str) -> str:
        """EIP-712 signature over the intent, 0x-hex"""
        signed = Account.from_key(private_key).sign_typed_data(self.domain(), INTENT_TYPES, intent)
        return Web3.to_hex(signed.signature)

    @staticmethod
    def intent_tuple(intent: Dict[str, Any]) -> tuple:
        return tuple(intent[field["name"]] for field in INTENT_TYPES["Intent"])

    def encode_execute_intent(self, intent: Dict[str, Any], signature: str, pool: PoolConfig) -> bytes:
        """Calldata for executeIntent, used when the call is wrapped in a UserOperation"""
        params = encode(
            [_INTENT_TUPLE_TYPE, "bytes", _POOL_KEY_TUPLE_TYPE, "bytes"],
            [self.intent_tuple(intent), bytes.fromhex(signature[2:]), pool_struct(pool), b""],
        )
        return EXECUTE_INTENT_SELECTOR + params

    def _submit_sync(self, intent: Dict[str, Any], signature: str, pool: PoolConfig, private_key: str) -> str:
        fn = self._contract().functions.executeIntent(
            self.intent_tuple(intent),
            bytes.fromhex(signature[2:]),
            pool_struct(pool),
            b"",
        )
        return send_contract_tx(self.w3, fn, private_key)

    async def submit_intent(self, intent: Dict[str, Any], signature: str, pool: PoolConfig, private_key: str) -> str:
        """Send executeIntent from the agent key; returns the tx hash"""
        tx_hash = await run_sync(self._submit_sync, intent, signature, pool, private_key)
        logger.info(f"[IntentMode] executeIntent confirmed: {tx_hash}")
        return tx_hash
