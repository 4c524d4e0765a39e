"""
Merkle proofs for (recipient, amount) allocations.

Leaves are ``keccak256(address || uint256(amount))`` with the address as 20
raw bytes and the amount as 32 big-endian bytes. Interior nodes hash the two
children in ascending order, so proofs carry sibling hashes only and no
left/right flags. Trees built by any tool using the same sorted-pair rule
(e.g. OpenZeppelin's MerkleProof) are interchangeable with this module.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple, Union

from ..core.address_checksum import address_to_bytes, keccak256, normalize_address
from ..core.config import MAX_PROOF_LENGTH
from ..core.exceptions import InvalidAmountError, ValidationError

logger = logging.getLogger("merkle_vesting.blockchain.merkle")

HASH_SIZE = 32
UINT256_MAX = 2**256 - 1

HashLike = Union[bytes, bytearray, str]


def to_hash(value: HashLike) -> bytes:
    """Coerce a 32-byte value given as bytes or (0x-)hex into bytes."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        hex_part = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(hex_part)
        except ValueError:
            raise ValidationError(f"Hash is not valid hex: {value!r}")
    else:
        raise ValidationError(f"Hash must be bytes or hex string, got {type(value).__name__}")

    if len(raw) != HASH_SIZE:
        raise ValidationError(f"Hash must be {HASH_SIZE} bytes, got {len(raw)}")
    return raw


def validate_amount(amount: int) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmountError(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or amount > UINT256_MAX:
        raise InvalidAmountError(f"Amount out of uint256 range: {amount}")
    return amount


def hash_leaf(recipient: str, amount: int) -> bytes:
    """Leaf hash for one allocation: keccak256(address(20) || uint256(32))."""
    return keccak256(address_to_bytes(recipient) + validate_amount(amount).to_bytes(32, "big"))


def hash_pair(a: bytes, b: bytes) -> bytes:
    # Equal-width big-endian values compare the same as unsigned integers
    if a > b:
        a, b = b, a
    return keccak256(a + b)


def process_proof(leaf: bytes, proof: Sequence[HashLike]) -> bytes:
    """Fold ``proof`` onto ``leaf`` and return the computed root."""
    if len(proof) > MAX_PROOF_LENGTH:
        raise ValidationError(f"Proof too long: {len(proof)} > {MAX_PROOF_LENGTH}")
    computed = leaf
    for sibling in proof:
        computed = hash_pair(computed, to_hash(sibling))
    return computed


def verify(recipient: str, amount: int, proof: Sequence[HashLike], root: HashLike) -> bool:
    """
    Check that (recipient, amount) is a leaf of the tree committed by ``root``.

    Args:
        recipient: 0x-prefixed 20-byte address
        amount: allocation as an unsigned 256-bit integer
        proof: sibling hashes ordered from leaf to root
        root: committed Merkle root

    Returns:
        True iff the recomputed root equals ``root``

    Raises:
        ValidationError: If an input is structurally malformed
    """
    committed = to_hash(root)
    computed = process_proof(hash_leaf(recipient, amount), list(proof))
    matched = computed == committed
    logger.debug(
        "Merkle proof %s for %s",
        "verified" if matched else "rejected",
        normalize_address(recipient)[:10],
        extra={"event": "merkle.verify", "proof_length": len(proof), "matched": matched},
    )
    return matched


class MerkleTree:
    """
    Builds a sorted-pair Merkle tree over (address, amount) allocations.

    Off-system tooling: the distributor publishes ``root`` when creating a
    phase and hands each recipient ``get_proof(address, amount)``. A node
    without a sibling on its level is promoted unchanged.
    """

    def __init__(self, allocations: Iterable[Tuple[str, int]]):
        self.allocations: List[Tuple[str, int]] = [
            (normalize_address(address), validate_amount(amount)) for address, amount in allocations
        ]
        if not self.allocations:
            raise ValueError("Merkle tree requires at least one allocation.")

        self.leaves = [hash_leaf(address, amount) for address, amount in self.allocations]
        if len(set(self.leaves)) != len(self.leaves):
            raise ValueError("Merkle tree allocations must be unique.")
        self._leaf_index = {leaf: i for i, leaf in enumerate(self.leaves)}

        self.tree = self._build_tree(self.leaves)
        self.root: bytes = self.tree[-1][0]

    def _build_tree(self, leaves: List[bytes]) -> List[List[bytes]]:
        tree = [leaves]
        current_level = leaves
        while len(current_level) > 1:
            next_level = []
            for i in range(0, len(current_level), 2):
                if i + 1 < len(current_level):
                    next_level.append(hash_pair(current_level[i], current_level[i + 1]))
                else:
                    next_level.append(current_level[i])
            tree.append(next_level)
            current_level = next_level
        return tree

    def get_root(self) -> bytes:
        return self.root

    def get_root_hex(self) -> str:
        return "0x" + self.root.hex()

    def get_proof(self, recipient: str, amount: int) -> List[bytes]:
        leaf = hash_leaf(recipient, amount)
        if leaf not in self._leaf_index:
            raise ValueError("Allocation not found in the Merkle tree.")

        proof = []
        index = self._leaf_index[leaf]
        for level in self.tree[:-1]:
            sibling_index = index ^ 1
            if sibling_index < len(level):
                proof.append(level[sibling_index])
            index //= 2
        return proof

    def get_proof_hex(self, recipient: str, amount: int) -> List[str]:
        return ["0x" + node.hex() for node in self.get_proof(recipient, amount)]

    def to_dict(self) -> dict:
        """Root plus one proof per allocation, as distributed to recipients."""
        return {
            "root": self.get_root_hex(),
            "claims": [
                {
                    "address": address,
                    "amount": str(amount),
                    "proof": self.get_proof_hex(address, amount),
                }
                for address, amount in self.allocations
            ],
        }
