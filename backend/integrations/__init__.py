"""
On-chain integrations
Intent router, ERC-4337 bundler, fee locker and the execution dispatcher.
"""

from integrations.trade import ExecutionResult, TradeRequest, INTENT_MODE, SESSION_KEY_MODE

__all__ = ["ExecutionResult", "TradeRequest", "INTENT_MODE", "SESSION_KEY_MODE"]
