"""
Address handling - normalisation, zero-address checks and EIP-55 checksums.

Addresses are 20-byte values written as ``0x`` followed by 40 hex digits.
Internally every address is kept in lower case; checksummed (mixed-case)
input is accepted and verified.

Address Format:
- Raw:      0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed
- Checksum: 0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed
"""

from __future__ import annotations

from Crypto.Hash import keccak

from .exceptions import InvalidAddressError

ZERO_ADDRESS = "0x" + "0" * 40


def keccak256(data: bytes) -> bytes:
    """Compute keccak256 hash (same as Ethereum)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def normalize_address(address: str) -> str:
    """
    Validate an address and return its lower-case form.

    Raises:
        InvalidAddressError: If the address is not 0x + 40 hex digits, or
            carries a mixed-case checksum that does not match
    """
    if not isinstance(address, str):
        raise InvalidAddressError(f"Address must be a string, got {type(address).__name__}")
    if not address.startswith(("0x", "0X")):
        raise InvalidAddressError(f"Invalid address prefix: {address[:2]!r}")

    hex_part = address[2:]
    if len(hex_part) != 40:
        raise InvalidAddressError(
            f"Address hex part must be 40 characters, got {len(hex_part)}",
            details={"address": address},
        )
    try:
        int(hex_part, 16)
    except ValueError:
        raise InvalidAddressError(f"Invalid hex characters in address: {address}")

    if not is_checksum_valid(address):
        raise InvalidAddressError(f"Invalid address checksum: {address}")

    return "0x" + hex_part.lower()


def require_nonzero_address(address: str, label: str = "address") -> str:
    """Normalise ``address`` and reject the zero address."""
    normalized = normalize_address(address)
    if normalized == ZERO_ADDRESS:
        raise InvalidAddressError(f"{label} cannot be the zero address")
    return normalized


def address_to_bytes(address: str) -> bytes:
    """Return the 20 raw bytes of an address."""
    return bytes.fromhex(normalize_address(address)[2:])


def to_checksum_address(address: str) -> str:
    """
    Convert an address to checksummed format (EIP-55).

    Example:
        >>> to_checksum_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
        '0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed'
    """
    hex_lower = normalize_address(address)[2:]
    address_hash = keccak256(hex_lower.encode("utf-8")).hex()

    checksummed = []
    for i, char in enumerate(hex_lower):
        if char in "0123456789":
            checksummed.append(char)
        elif int(address_hash[i], 16) >= 8:
            checksummed.append(char.upper())
        else:
            checksummed.append(char)

    return "0x" + "".join(checksummed)


def is_checksum_valid(address: str) -> bool:
    """
    Verify if address has valid checksum.

    Returns:
        True if checksum is valid or address is all lowercase/uppercase
        False if checksum is invalid
    """
    hex_part = address[2:]

    # All lowercase or all uppercase is valid (no checksum applied)
    if hex_part == hex_part.lower() or hex_part == hex_part.upper():
        return True

    hex_lower = hex_part.lower()
    address_hash = keccak256(hex_lower.encode("utf-8")).hex()
    for i, char in enumerate(hex_part):
        if char.isdigit():
            continue
        expected_upper = int(address_hash[i], 16) >= 8
        if char.isupper() != expected_upper:
            return False
    return True
