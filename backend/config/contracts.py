"""
Treasury Contract Configuration
Static addresses and minimal ABIs used by the treasury agent.
"""

import os

# ============================================
# TOKEN ADDRESSES (Base Sepolia)
# ============================================

TOKENS = {
    "USDC": "0x524C057B1030B3D832f1688e4993159C7A124518",  # MockUSDC
    "DAI": "0x233Dc75Bda7dB90a33454e4333E3ac96eB7FB84E",   # MockDAI
    "WETH": "0x4200000000000000000000000000000000000006",
}

# ============================================
# PROTOCOL ADDRESSES
# ============================================

# Uniswap v4 hook that emits ExecutionReceipt events
RECEIPT_HOOK = os.environ.get(
    "RECEIPT_HOOK_ADDRESS",
    "0x906E3e24C04f6b6B5b6743BB77d0FCBE4d87C040"
)

# ERC-4337 EntryPoint v0.6
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

# ============================================
# ABIs (Key functions)
# ============================================

ERC20_ABI = [
    {"inputs": [{"name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}], "name": "transfer", "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
]

_INTENT_TUPLE = {
    "name": "intent",
    "type": "tuple",
    "components": [
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

_POOL_KEY_TUPLE = {
    "name": "poolKey",
    "type": "tuple",
    "components": [
        {"name": "currency0", "type": "address"},
        {"name": "currency1", "type": "address"},
        {"name": "fee", "type": "uint24"},
        {"name": "tickSpacing", "type": "int24"},
        {"name": "hooks", "type": "address"},
    ],
}

INTENT_ROUTER_ABI = [
    {
        "inputs": [_INTENT_TUPLE, {"name": "signature", "type": "bytes"}, _POOL_KEY_TUPLE, {"name": "strategyData", "type": "bytes"}],
        "name": "executeIntent",
        "outputs": [{"name": "amountOut", "type": "int256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {"inputs": [{"name": "user", "type": "address"}], "name": "getNonce", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]

FEE_LOCKER_ABI = [
    {"inputs": [{"name": "token", "type": "address"}, {"name": "wallet", "type": "address"}], "name": "availableWethFees", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "tokens", "type": "address[]"}], "name": "claimAll", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]

DELEGATION_ROUTER_ABI = [
    {
        "inputs": [
            {"name": "user", "type": "address"},
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "compound", "type": "uint8"},
                    {"name": "toStables", "type": "uint8"},
                    {"name": "hold", "type": "uint8"},
                    {"name": "maxSlippage", "type": "uint16"},
                ],
            },
        ],
        "name": "executeManagement",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

# Kernel smart account
SMART_ACCOUNT_ABI = [
    {"inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}, {"name": "data", "type": "bytes"}], "name": "execute", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [], "name": "getNonce", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]
