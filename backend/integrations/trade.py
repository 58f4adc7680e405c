"""
Trade request / execution result shared by both execution modes
"""

from dataclasses import dataclass
from typing import Optional

INTENT_MODE = "intent"
SESSION_KEY_MODE = "session-key"


@dataclass
class TradeRequest:
    user_address: str
    token_in: str
    token_out: str
    amount_in: int
    max_slippage_bps: int


@dataclass
class ExecutionResult:
    success: bool
    execution_mode: str
    tx_hash: Optional[str] = None
    user_op_hash: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, execution_mode: str, error: str) -> "ExecutionResult":
        return cls(success=False, execution_mode=execution_mode, error=error)

    def to_dict(self) -> dict:
        data = {"success": self.success, "executionMode": self.execution_mode}
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.user_op_hash:
            data["userOpHash"] = self.user_op_hash
        if self.error:
            data["error"] = self.error
        return data
