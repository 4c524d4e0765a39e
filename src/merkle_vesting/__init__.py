"""
Merkle vesting distributor.

Phased token reward distribution where each phase commits to its
(recipient, amount) list with a Merkle root and recipients claim once per
phase with a proof.
"""

from .blockchain.merkle import MerkleTree, hash_leaf, verify
from .blockchain.vesting_ledger import LedgerEvent, VestingLedger, VestingPhase
from .core.access_control import OwnerAuthority
from .core.contracts.erc20 import ERC20Token

__version__ = "0.1.0"

__all__ = [
    "ERC20Token",
    "LedgerEvent",
    "MerkleTree",
    "OwnerAuthority",
    "VestingLedger",
    "VestingPhase",
    "hash_leaf",
    "verify",
]
