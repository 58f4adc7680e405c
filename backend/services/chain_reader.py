"""
Chain Reader
Balance and claimable-fee reads over web3.

web3 calls are synchronous, so every read runs in the default thread pool
to keep the event loop free.
"""

import logging

from web3 import Web3

from config.contracts import ERC20_ABI, FEE_LOCKER_ABI
from config.settings import Settings, get_settings
from integrations.transactions import run_sync

logger = logging.getLogger(__name__)


class ChainReader:
    """
    Balance/fee reader capability:
    - get_balance(token, owner) -> int
    - get_claimable_fee(token, owner) -> int
    """

    def __init__(self, settings: Settings = None, w3: Web3 = None):
        self.settings = settings or get_settings()
        self.w3 = w3 or Web3(Web3.HTTPProvider(self.settings.rpc_url))

    def _erc20(self, token: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    def _fee_locker(self):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(self.settings.fee_locker_address),
            abi=FEE_LOCKER_ABI,
        )

    def get_balance_sync(self, token: str, owner: str) -> int:
        return self._erc20(token).functions.balanceOf(Web3.to_checksum_address(owner)).call()

    def get_claimable_fee_sync(self, token: str, owner: str) -> int:
        return self._fee_locker().functions.availableWethFees(
            Web3.to_checksum_address(token),
            Web3.to_checksum_address(owner),
        ).call()

    async def get_balance(self, token: str, owner: str) -> int:
        return int(await run_sync(self.get_balance_sync, token, owner))

    async def get_claimable_fee(self, token: str, owner: str) -> int:
        return int(await run_sync(self.get_claimable_fee_sync, token, owner))
