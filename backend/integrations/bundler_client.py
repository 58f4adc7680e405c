"""
ERC-4337 Bundler Client
JSON-RPC calls to a bundler endpoint (ZeroDev / Pimlico compatible).
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from config.contracts import ENTRYPOINT_V06
from infrastructure.metrics import metrics

logger = logging.getLogger(__name__)


class BundlerError(Exception):
    """Bundler returned a JSON-RPC error or an unusable response"""


class BundlerClient:
    """
    Usage:
        bundler = BundlerClient(settings.bundler_url)
        user_op_hash = await bundler.send_user_operation(user_op)
        tx_hash = await bundler.wait_for_receipt(user_op_hash)
    """

    def __init__(
        self,
        bundler_url: str,
        entrypoint: str = ENTRYPOINT_V06,
        receipt_timeout: float = 60.0,
        poll_interval: float = 2.0,
    ):
        self.bundler_url = bundler_url
        self.entrypoint = entrypoint
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        start = time.time()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(self.bundler_url, json=payload) as resp:
                    result = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            metrics.record_call("bundler", method, False, time.time() - start, str(e))
            raise BundlerError(f"Bundler request failed: {e}") from e

        if "error" in result:
            metrics.record_call("bundler", method, False, time.time() - start, str(result["error"]))
            raise BundlerError(f"Bundler error: {result['error']}")

        metrics.record_call("bundler", method, True, time.time() - start)
        return result.get("result")

    async def send_user_operation(self, user_op: Dict[str, Any]) -> str:
        """Submit a UserOperation; returns its hash"""
        user_op_hash = await self._rpc("eth_sendUserOperation", [user_op, self.entrypoint])
        if not user_op_hash:
            raise BundlerError("Bundler returned no UserOperation hash")
        logger.info(f"[Bundler] UserOp sent: {user_op_hash}")
        return user_op_hash

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict[str, Any]]:
        return await self._rpc("eth_getUserOperationReceipt", [user_op_hash])

    async def wait_for_receipt(self, user_op_hash: str) -> Optional[str]:
        """
        Poll for the UserOperation receipt.

        Returns the bundled transaction hash, or None when the timeout passes
        without a receipt. Lookup errors count as "not yet".
        """
        attempts = max(1, int(self.receipt_timeout // self.poll_interval))
        for _ in range(attempts):
            try:
                receipt = await self.get_user_operation_receipt(user_op_hash)
            except BundlerError as e:
                logger.warning(f"[Bundler] Receipt lookup failed for {user_op_hash}: {e}")
                receipt = None

            if receipt:
                tx_hash = (receipt.get("receipt") or {}).get("transactionHash")
                if tx_hash:
                    return tx_hash

            await asyncio.sleep(self.poll_interval)

        logger.warning(f"[Bundler] No receipt for {user_op_hash} after {self.receipt_timeout:.0f}s")
        return None
