"""
Execution Dispatcher
Submits one corrective trade per call through one of two execution modes:

- session-key: a non-expired session key is stored for the user
- intent:      otherwise

Every failure is converted into ExecutionResult(success=False, error=...)
tagged with the mode that was attempted. Nothing raises past dispatch().
"""

import logging
import time
from typing import Optional, Protocol, Union

from config.settings import Settings, get_settings
from infrastructure.kv_store import KVStore, get_store
from infrastructure.metrics import metrics
from integrations.bundler_client import BundlerClient
from integrations.intent_mode import IntentExecutionMode
from integrations.intent_router import IntentRouterClient
from integrations.session_mode import SessionKeyExecutionMode
from integrations.trade import INTENT_MODE, ExecutionResult, TradeRequest
from services.session_keys import get_session_key

logger = logging.getLogger(__name__)


class ExecutionMode(Protocol):
    name: str

    async def execute(self, trade: TradeRequest) -> ExecutionResult:
        ...


class ExecutionDispatcher:
    """
    Usage:
        dispatcher = ExecutionDispatcher(settings, store)
        result = await dispatcher.dispatch(TradeRequest(...))
    """

    def __init__(
        self,
        settings: Settings = None,
        store: KVStore = None,
        router: IntentRouterClient = None,
        bundler: BundlerClient = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or get_store()
        self._router = router
        self._bundler = bundler

    @property
    def router(self) -> IntentRouterClient:
        if self._router is None:
            self._router = IntentRouterClient(self.settings)
        return self._router

    @property
    def bundler(self) -> Optional[BundlerClient]:
        if self._bundler is None and self.settings.has_bundler:
            self._bundler = BundlerClient(
                self.settings.bundler_url,
                entrypoint=self.settings.entrypoint_address,
                receipt_timeout=self.settings.userop_receipt_timeout_seconds,
                poll_interval=self.settings.userop_poll_interval_seconds,
            )
        return self._bundler

    async def select_mode(self, user_address: str) -> Union[IntentExecutionMode, SessionKeyExecutionMode]:
        session_key = await get_session_key(self.store, user_address)
        if session_key is not None:
            return SessionKeyExecutionMode(self.router, session_key, self.settings.private_key, self.bundler)
        return IntentExecutionMode(self.router, self.settings.private_key)

    async def dispatch(self, trade: TradeRequest) -> ExecutionResult:
        start = time.time()
        mode_name = INTENT_MODE

        try:
            mode = await self.select_mode(trade.user_address)
            mode_name = mode.name
            result = await mode.execute(trade)
        except Exception as e:
            logger.error(f"[Dispatcher] {mode_name} execution failed for {trade.user_address}: {e}")
            result = ExecutionResult.failed(mode_name, str(e))

        metrics.record_execution(result.execution_mode, result.success, time.time() - start, result.error)
        return result
