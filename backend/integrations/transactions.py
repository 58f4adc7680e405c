"""
Transaction helpers
Build, sign, send and confirm a contract call from a local key.
"""

import asyncio
import logging

from eth_account import Account
from web3 import Web3

logger = logging.getLogger(__name__)

GAS_BUFFER = 1.1
RECEIPT_TIMEOUT = 120


class TransactionRevertedError(Exception):
    """Transaction was mined with status 0"""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction reverted: {tx_hash}")


def send_contract_tx(w3: Web3, fn, private_key: str, gas_buffer: float = GAS_BUFFER) -> str:
    """
    Send a prepared contract function call and wait for its receipt.

    Gas is estimated up front and padded by gas_buffer.
    Returns the 0x-prefixed transaction hash.
    """
    account = Account.from_key(private_key)

    estimated = fn.estimate_gas({"from": account.address})
    tx = fn.build_transaction({
        "from": account.address,
        "nonce": w3.eth.get_transaction_count(account.address),
        "gas": int(estimated * gas_buffer),
    })

    signed = account.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    tx_hex = Web3.to_hex(tx_hash)
    logger.info(f"[Tx] Sent {tx_hex}")

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
    if receipt.status != 1:
        raise TransactionRevertedError(tx_hex)
    return tx_hex


async def run_sync(fn, *args):
    """Run a blocking web3 call in the default executor"""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, fn, *args)
