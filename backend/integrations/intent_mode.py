"""
Signed-intent execution mode.
The agent signs an EIP-712 intent for the user and submits it itself.
"""

import logging

from config.pools import resolve_pool
from integrations.intent_router import IntentRouterClient
from integrations.trade import INTENT_MODE, ExecutionResult, TradeRequest

logger = logging.getLogger(__name__)


class IntentExecutionMode:
    name = INTENT_MODE

    def __init__(self, router: IntentRouterClient, private_key: str):
        self.router = router
        self.private_key = private_key

    async def prepare(self, trade: TradeRequest):
        """(intent, signature, pool) for a trade; pool lookup happens first"""
        if not self.private_key:
            raise ValueError("PRIVATE_KEY not configured")

        pool = resolve_pool(trade.token_in, trade.token_out)
        nonce = await self.router.get_nonce(trade.user_address)
        intent = self.router.build_intent(
            trade.user_address,
            trade.token_in,
            trade.token_out,
            trade.amount_in,
            trade.max_slippage_bps,
            nonce,
        )
        signature = self.router.sign_intent(intent, self.private_key)
        return intent, signature, pool

    async def execute(self, trade: TradeRequest) -> ExecutionResult:
        intent, signature, pool = await self.prepare(trade)
        logger.info(
            f"[IntentMode] {trade.user_address}: {trade.amount_in} {trade.token_in} -> {trade.token_out} "
            f"(nonce {intent['nonce']})"
        )
        tx_hash = await self.router.submit_intent(intent, signature, pool, self.private_key)
        return ExecutionResult(success=True, execution_mode=self.name, tx_hash=tx_hash)
