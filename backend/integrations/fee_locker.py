"""
Fee Locker Client
Claims accumulated WETH trading fees for agent-launched tokens, records the
delegated management call and moves claimed WETH for distribution.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError

from config.contracts import DELEGATION_ROUTER_ABI, ERC20_ABI, FEE_LOCKER_ABI
from config.settings import Settings, get_settings
from integrations.transactions import run_sync, send_contract_tx

logger = logging.getLogger(__name__)

# compound, toStables, hold, maxSlippage
HOLD_ALL_PARAMS = (0, 0, 100, 0)


@dataclass
class ClaimResult:
    success: bool
    weth_claimed: int = 0
    tokens_claimed: List[str] = field(default_factory=list)
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "wethClaimed": str(self.weth_claimed),
            "tokensClaimed": self.tokens_claimed,
        }
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.error:
            data["error"] = self.error
        return data


class FeeLockerClient:

    def __init__(self, settings: Settings = None, w3: Web3 = None):
        self.settings = settings or get_settings()
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.settings.rpc_url))

    def _fee_locker(self):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(self.settings.fee_locker_address),
            abi=FEE_LOCKER_ABI,
        )

    def _available_sync(self, token: str, wallet: str) -> int:
        try:
            return int(self._fee_locker().functions.availableWethFees(
                Web3.to_checksum_address(token),
                Web3.to_checksum_address(wallet),
            ).call())
        except ContractLogicError:
            # Token never traded
            return 0

    async def available_fees(self, tokens: List[str], wallet: str) -> List[Tuple[str, int]]:
        fees = []
        for token in tokens:
            try:
                amount = await run_sync(self._available_sync, token, wallet)
            except Exception as e:
                logger.warning(f"[FeeClaim] Fee read failed for {token} / {wallet}: {e}")
                amount = 0
            fees.append((token, amount))
        return fees

    async def claim_all(self, private_key: str, tokens: List[str]) -> ClaimResult:
        """
        Claim WETH fees for every token with a positive balance.

        Nothing claimable is a successful no-op: no transaction is sent.
        """
        wallet = Account.from_key(private_key).address
        fees = await self.available_fees(tokens, wallet)
        claimable = [(token, amount) for token, amount in fees if amount > 0]

        if not claimable:
            logger.info(f"[FeeClaim] Nothing to claim for {wallet}")
            return ClaimResult(success=True)

        total = sum(amount for _, amount in claimable)
        claim_tokens = [token for token, _ in claimable]

        def _claim():
            fn = self._fee_locker().functions.claimAll(
                [Web3.to_checksum_address(t) for t in claim_tokens]
            )
            return send_contract_tx(self.w3, fn, private_key)

        try:
            tx_hash = await run_sync(_claim)
        except Exception as e:
            logger.error(f"[FeeClaim] claimAll failed for {wallet}: {e}")
            return ClaimResult(success=False, tokens_claimed=claim_tokens, error=str(e))

        logger.info(f"[FeeClaim] Claimed {total} wei WETH across {len(claim_tokens)} token(s): {tx_hash}")
        return ClaimResult(success=True, weth_claimed=total, tokens_claimed=claim_tokens, tx_hash=tx_hash)

    async def execute_management(self, private_key: str, user_address: str) -> str:
        """On-chain audit record of a delegated management run"""
        if not self.settings.delegation_router:
            raise ValueError("DELEGATION_ROUTER not configured")

        def _send():
            router = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.settings.delegation_router),
                abi=DELEGATION_ROUTER_ABI,
            )
            fn = router.functions.executeManagement(Web3.to_checksum_address(user_address), HOLD_ALL_PARAMS)
            return send_contract_tx(self.w3, fn, private_key)

        return await run_sync(_send)

    async def transfer_weth(self, private_key: str, to_address: str, amount: int) -> str:
        def _send():
            weth = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.settings.weth_address),
                abi=ERC20_ABI,
            )
            fn = weth.functions.transfer(Web3.to_checksum_address(to_address), int(amount))
            return send_contract_tx(self.w3, fn, private_key)

        return await run_sync(_send)
