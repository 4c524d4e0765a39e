"""
Single-owner administrative authority.

The vesting ledger receives an OwnerAuthority at construction and calls
``require_owner`` at the start of every administrative operation.
"""

from __future__ import annotations

import logging
from typing import Optional

from .address_checksum import ZERO_ADDRESS, normalize_address, require_nonzero_address
from .exceptions import AuthorizationError

logger = logging.getLogger("merkle_vesting.core.access_control")


class OwnerAuthority:
    """Holds the single administrative principal and enforces it."""

    def __init__(self, owner: str):
        self._owner = require_nonzero_address(owner, "owner")
        logger.info("OwnerAuthority initialized with owner %s", self._owner[:10])

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: Optional[str]) -> bool:
        if not caller or self._owner == ZERO_ADDRESS:
            return False
        try:
            return normalize_address(caller) == self._owner
        except ValueError:
            return False

    def require_owner(self, caller: str) -> None:
        """Raise AuthorizationError unless ``caller`` is the current owner."""
        if not self.is_owner(caller):
            raise AuthorizationError(
                f"Caller {caller} is not the owner",
                details={"caller": caller, "owner": self._owner},
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Hand authority to ``new_owner`` (owner only, zero address rejected)."""
        self.require_owner(caller)
        self._set_owner(require_nonzero_address(new_owner, "new owner"))

    def renounce_ownership(self, caller: str) -> None:
        """Give up authority permanently; every later admin call will fail."""
        self.require_owner(caller)
        self._set_owner(ZERO_ADDRESS)

    def _set_owner(self, new_owner: str) -> None:
        previous = self._owner
        self._owner = new_owner
        logger.warning(
            "Ownership transferred from %s to %s",
            previous[:10],
            new_owner[:10],
            extra={"event": "authority.ownership_transferred"},
        )
