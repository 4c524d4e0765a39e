"""
Token contracts consumed by the vesting ledger.

- ERC20: fungible reward token (reference implementation of TokenLedger)
"""

from .erc20 import UINT256_MAX, ERC20Token, TokenEvent

__all__ = [
    "ERC20Token",
    "TokenEvent",
    "UINT256_MAX",
]
