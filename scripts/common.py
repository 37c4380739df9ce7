#!/usr/bin/env python3
"""
TON Agent Kit — Shared Constants and Utilities

Centralized configuration for:
- Contract opcodes (jetton, NFT, marketplace, DEX)
- Fixed fees and gas margins (nanoTON)
- DEX contract addresses per network
- Known tokens and metadata keys
- Formatting utilities
"""

from decimal import Decimal
from typing import Optional

# =============================================================================
# Units
# =============================================================================

NANO = 10**9
TON_DECIMALS = 9

# =============================================================================
# Wallet send modes
# =============================================================================

SEND_MODE_PAY_GAS_SEPARATELY = 1
SEND_MODE_IGNORE_ERRORS = 2
SEND_MODE_DEFAULT = SEND_MODE_PAY_GAS_SEPARATELY + SEND_MODE_IGNORE_ERRORS

# Wallet v3/v4 accepts at most 4 internal messages per transfer
MAX_MESSAGES_PER_TRANSFER = 4

# =============================================================================
# Jetton opcodes (TEP-74 + minter admin ops)
# =============================================================================

OP_COMMENT = 0
OP_MINT = 21
OP_CHANGE_ADMIN = 3
OP_UPDATE_METADATA = 4
OP_JETTON_TRANSFER = 0x0F8A7EA5
OP_JETTON_INTERNAL_TRANSFER = 0x178D4519
OP_JETTON_BURN = 0x595F07BC

# =============================================================================
# NFT / marketplace opcodes
# =============================================================================

OP_NFT_TRANSFER = 0x5FCC3D14
OP_CANCEL_AUCTION = 1
OP_CANCEL_FIXED_PRICE = 3

# =============================================================================
# DEX opcodes
# =============================================================================

# DeDust
OP_DEDUST_CREATE_VAULT = 0x21CFE02B
OP_DEDUST_CREATE_VOLATILE_POOL = 0x97D51F2F
OP_DEDUST_DEPOSIT_NATIVE = 0xD55E4686
OP_DEDUST_DEPOSIT_JETTON = 0x40E108D6

# STON.fi v2
OP_STONFI_PROVIDE_LP = 0x37C096DF
OP_STONFI_TON_TRANSFER = 0x01F3835D
OP_STONFI_WITHDRAW_FEE = 0x354BCDF4

# Torch Finance
OP_TORCH_DEPOSIT = 0x95DB9D39
OP_TORCH_WITHDRAW = 0x297437CF

# =============================================================================
# Fees and gas margins (nanoTON)
# =============================================================================

FEE_DEPLOY_MINTER = 50_000_000  # 0.05 TON
FEE_MINT = 100_000_000  # 0.1 TON
FEE_MINT_FORWARD = 50_000_000  # 0.05 TON forwarded into internal_transfer
FEE_BURN = 50_000_000
FEE_CHANGE_ADMIN = 50_000_000
FEE_UPDATE_METADATA = 50_000_000
FEE_JETTON_TRANSFER = 50_000_000
FEE_NFT_TRANSFER = 50_000_000
FEE_NFT_FORWARD = 10_000_000

BUY_GAS_MARGIN = 1_000_000_000  # 1 TON
BID_GAS_MARGIN = 100_000_000  # 0.1 TON
CANCEL_GAS = 200_000_000  # 0.2 TON

DEX_CREATE_VAULT_GAS = 100_000_000
DEX_CREATE_POOL_GAS = 250_000_000
DEX_DEPOSIT_GAS = 150_000_000
DEX_JETTON_DEPOSIT_GAS = 300_000_000
DEX_FORWARD_GAS = 250_000_000
DEX_BURN_GAS = 500_000_000
DEX_CLAIM_FEE_GAS = 300_000_000

# =============================================================================
# DEX addresses
# =============================================================================

DEX_NAMES = {
    "dedust": "DeDust",
    "stonfi": "STON.fi",
    "torch": "Torch Finance",
}

# Addresses are overridable via config: dex.<name>.<key>
DEX_ADDRESSES = {
    "mainnet": {
        "dedust": {
            "factory": "EQBfBWT7X2BHg9tXAxzhz2aKiNTU1tpt5NsiK0uSDW_YAJ67",
        },
        "stonfi": {},
        "torch": {},
    },
    "testnet": {
        "dedust": {},
        "stonfi": {
            "router": "kQALh-JBBIKK7gr0o4AVf9JZnEsFndqO0qTCyT-D-yBsWk0v",
            "pton": "kQACS30DNoUQ7NfApPvzh7eBmSZ9L4ygJ-lkNWtba8TQT-Px",
            "ton_fee_minter": "kQDLvsZol3juZyOAVG8tWsJntOxeEZWEaWCbbSjYakQpuYN5",
        },
        "torch": {
            "factory": "kQAEQ_tRYl3_EJXBTGIKaao0AVZ00OOYOnabhR1aEVXfSjrQ",
            "pool": "EQB2iUVMu3yffZO9sAG3xadzXgdPPl43MaXK9s8Hd8xQgQFO",
        },
    },
}

# Torch Finance pool accepts only these jettons (plus TON)
TORCH_SUPPORTED_TOKENS = [
    "EQC98_qAmNEptUtPc7W6xdHh_ZHrBUFpw5Ft_IzNU20QAJav",  # tsTON
    "EQDNhy-nxYFgUqzfUzImBEP67JqsyMIcyk2S5_RwNNEYku0k",  # stTON
    "EQDPdq8xjAhytYqfGSX8KcFWIReCufsB9Wdg0pLlYSO_h76w",  # hTON
]

# =============================================================================
# API URLs
# =============================================================================

TONAPI_BASE_URLS = {
    "mainnet": "https://tonapi.io/v2",
    "testnet": "https://testnet.tonapi.io/v2",
}

# =============================================================================
# Jetton metadata (TEP-64)
# =============================================================================

ONCHAIN_METADATA_KEYS = (
    "name",
    "description",
    "image",
    "symbol",
    "decimals",
    "uri",
    "image_data",
    "social",
    "website",
)

# Values of these keys must be plain ASCII
ASCII_METADATA_KEYS = ("image", "uri")

# =============================================================================
# Known Tokens (symbol -> master contract address)
# =============================================================================

KNOWN_TOKENS = {
    "TON": "native",
    "USDT": "EQCxE6mUtQJKFnGfaROTKOt1lZbDiiX1kCixRv7Nw2Id_sDs",
    "NOT": "EQAvlWFDxGF2lXm67y4yzC17wYKD9A0guwPkMs1gOsM__NOT",
    "STON": "EQA2kCVNwVsil2EM2mB0SkXytxCqQjS4mttjDpnXmwG9T6bO",
    "TSTON": "EQC98_qAmNEptUtPc7W6xdHh_ZHrBUFpw5Ft_IzNU20QAJav",
    "STTON": "EQDNhy-nxYFgUqzfUzImBEP67JqsyMIcyk2S5_RwNNEYku0k",
    "HTON": "EQDPdq8xjAhytYqfGSX8KcFWIReCufsB9Wdg0pLlYSO_h76w",
}


# =============================================================================
# Formatting Utilities
# =============================================================================


def format_ton_amount(nano: int) -> str:
    """Convert nanoTON to TON for display (exact, no float rounding)."""
    ton = Decimal(int(nano)) / NANO
    return f"{ton.normalize():f} TON"


def resolve_token_symbol(token: str) -> str:
    """
    Resolve token symbol or address to master contract address.

    Args:
        token: Token symbol (e.g., "USDT") or address

    Returns:
        Master contract address or "native" for TON
    """
    token_upper = token.upper().strip()
    if token_upper in KNOWN_TOKENS:
        return KNOWN_TOKENS[token_upper]
    return token.strip()


def get_dex_address(network: str, dex: str, key: str) -> Optional[str]:
    """Default contract address of a DEX for a network, or None."""
    return DEX_ADDRESSES.get(network, {}).get(dex, {}).get(key)


# =============================================================================
# CLI Help Text
# =============================================================================

COMMON_EPILOG = """
Environment variables:
  WALLET_PASSWORD    Password for encrypted wallet storage
  TONAPI_KEY         TonAPI API key (optional, increases rate limits)

Configuration:
  Config file: ~/.ton-agent/config.json
  Set values: python utils.py config set <key> <value>

Amounts are given in whole units (e.g. 1.5 TON) and converted to integer
minimal units before anything is built or sent.
"""


# =============================================================================
# Module exports
# =============================================================================

__all__ = [
    "NANO",
    "TON_DECIMALS",
    "SEND_MODE_DEFAULT",
    "MAX_MESSAGES_PER_TRANSFER",
    "DEX_NAMES",
    "DEX_ADDRESSES",
    "TORCH_SUPPORTED_TOKENS",
    "TONAPI_BASE_URLS",
    "ONCHAIN_METADATA_KEYS",
    "KNOWN_TOKENS",
    "format_ton_amount",
    "resolve_token_symbol",
    "get_dex_address",
    "COMMON_EPILOG",
]
