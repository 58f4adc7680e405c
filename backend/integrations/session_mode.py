"""
Session-key execution mode (ERC-4337).

The signed intent's executeIntent call is wrapped in the user's Kernel smart
account execute(to, value, data) and submitted as a UserOperation through the
bundler, signed by the agent's session key. Without a bundler URL the intent
is sent directly from the agent key instead.
"""

import logging
from typing import Any, Dict, Optional

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from config.contracts import SMART_ACCOUNT_ABI
from infrastructure import clock
from integrations.bundler_client import BundlerClient
from integrations.intent_mode import IntentExecutionMode
from integrations.intent_router import IntentRouterClient
from integrations.trade import SESSION_KEY_MODE, ExecutionResult, TradeRequest
from integrations.transactions import run_sync
from services.session_keys import SessionKeyError, StoredSessionKey

logger = logging.getLogger(__name__)

EXECUTE_INTENT_FUNCTION = "executeIntent"
KERNEL_EXECUTE_SELECTOR = Web3.keccak(text="execute(address,uint256,bytes)")[:4]

USEROP_GAS = {
    "callGasLimit": "0x50000",
    "verificationGasLimit": "0x30000",
    "preVerificationGas": "0x10000",
    "maxFeePerGas": "0x3B9ACA00",  # 1 gwei
    "maxPriorityFeePerGas": "0x3B9ACA00",
}


def validate_session_key(session_key: StoredSessionKey, target: str, now_s: int = None) -> None:
    """Raises SessionKeyError unless the key may call executeIntent on target now"""
    now_s = clock.now_seconds() if now_s is None else now_s
    config = session_key.config

    if config.valid_until <= now_s:
        raise SessionKeyError("Session key has expired")
    if config.valid_after > now_s:
        raise SessionKeyError("Session key is not yet valid")
    if target.lower() not in {t.lower() for t in config.allowed_targets}:
        raise SessionKeyError("IntentRouter not in allowed targets")
    if EXECUTE_INTENT_FUNCTION not in config.allowed_functions:
        raise SessionKeyError("executeIntent not in allowed functions")


def _hex_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:]) if value and value != "0x" else b""


def user_operation_hash(user_op: Dict[str, Any], entrypoint: str, chain_id: int) -> bytes:
    """EntryPoint v0.6 getUserOpHash"""
    packed = encode(
        ["address", "uint256", "bytes32", "bytes32", "uint256", "uint256", "uint256", "uint256", "uint256", "bytes32"],
        [
            Web3.to_checksum_address(user_op["sender"]),
            int(user_op["nonce"], 16),
            Web3.keccak(_hex_bytes(user_op["initCode"])),
            Web3.keccak(_hex_bytes(user_op["callData"])),
            int(user_op["callGasLimit"], 16),
            int(user_op["verificationGasLimit"], 16),
            int(user_op["preVerificationGas"], 16),
            int(user_op["maxFeePerGas"], 16),
            int(user_op["maxPriorityFeePerGas"], 16),
            Web3.keccak(_hex_bytes(user_op["paymasterAndData"])),
        ],
    )
    return Web3.keccak(encode(
        ["bytes32", "address", "uint256"],
        [Web3.keccak(packed), Web3.to_checksum_address(entrypoint), chain_id],
    ))


class SessionKeyExecutionMode:
    name = SESSION_KEY_MODE

    def __init__(
        self,
        router: IntentRouterClient,
        session_key: StoredSessionKey,
        private_key: str,
        bundler: Optional[BundlerClient] = None,
    ):
        self.router = router
        self.session_key = session_key
        self.private_key = private_key
        self.bundler = bundler
        self._intent_mode = IntentExecutionMode(router, private_key)

    async def _smart_account_nonce(self) -> int:
        account = self.router.w3.eth.contract(
            address=Web3.to_checksum_address(self.session_key.smart_account_address),
            abi=SMART_ACCOUNT_ABI,
        )
        try:
            return int(await run_sync(account.functions.getNonce().call))
        except Exception as e:
            logger.warning(f"[SessionMode] getNonce failed for {self.session_key.smart_account_address}: {e}")
            return 0

    async def build_user_operation(self, call_data: bytes) -> Dict[str, Any]:
        nonce = await self._smart_account_nonce()
        execute_call = KERNEL_EXECUTE_SELECTOR + encode(
            ["address", "uint256", "bytes"],
            [self.router.router_address, 0, call_data],
        )

        user_op = {
            "sender": Web3.to_checksum_address(self.session_key.smart_account_address),
            "nonce": hex(nonce),
            "initCode": "0x",
            "callData": Web3.to_hex(execute_call),
            **USEROP_GAS,
            "paymasterAndData": "0x",
            "signature": "0x",
        }

        op_hash = user_operation_hash(user_op, self.bundler.entrypoint, self.router.settings.chain_id)
        signed = Account.from_key(self.private_key).sign_message(encode_defunct(primitive=op_hash))
        user_op["signature"] = Web3.to_hex(signed.signature)
        return user_op

    async def execute(self, trade: TradeRequest) -> ExecutionResult:
        validate_session_key(self.session_key, self.router.settings.intent_router)
        intent, signature, pool = await self._intent_mode.prepare(trade)

        if self.bundler is None:
            logger.info("[SessionMode] No bundler URL configured, falling back to direct execution")
            tx_hash = await self.router.submit_intent(intent, signature, pool, self.private_key)
            return ExecutionResult(success=True, execution_mode=self.name, tx_hash=tx_hash, user_op_hash=tx_hash)

        call_data = self.router.encode_execute_intent(intent, signature, pool)
        user_op = await self.build_user_operation(call_data)
        user_op_hash = await self.bundler.send_user_operation(user_op)
        tx_hash = await self.bundler.wait_for_receipt(user_op_hash)

        logger.info(f"[SessionMode] {trade.user_address}: userOp {user_op_hash} tx {tx_hash or 'pending'}")
        return ExecutionResult(
            success=True,
            execution_mode=self.name,
            tx_hash=tx_hash,
            user_op_hash=user_op_hash,
        )
