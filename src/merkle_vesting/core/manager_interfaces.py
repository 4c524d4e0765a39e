"""
Collaborator Protocol Interfaces - decoupling the vesting ledger from the
concrete token and authority implementations.

The ledger depends only on these protocols:
- TokenLedger: the fungible token holding the distributed rewards
- Authority: the single-principal gate for administrative operations

Usage:
    ledger = VestingLedger(
        token=ERC20Token(name="Reward", symbol="RWD", owner=admin),
        authority=OwnerAuthority(admin),
        roots=[root], start_times=[start], total_rewards=[total],
    )
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenLedger(Protocol):
    """
    Protocol for the fungible token custody collaborator.

    ``transfer`` and ``transfer_from`` either return True, return False, or
    raise. The ledger treats anything but True as a failure of the
    enclosing operation.
    """

    def balance_of(self, account: str) -> int:
        """Return the token balance of ``account``."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient``."""
        ...

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """Move ``amount`` from ``from_addr`` to ``to_addr`` using ``spender``'s allowance."""
        ...


@runtime_checkable
class Authority(Protocol):
    """Protocol for the administrative authority gate."""

    @property
    def owner(self) -> str:
        """Current authority address."""
        ...

    def require_owner(self, caller: str) -> None:
        """Raise AuthorizationError unless ``caller`` is the authority."""
        ...

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Hand the authority to ``new_owner``."""
        ...

    def renounce_ownership(self, caller: str) -> None:
        """Leave the authority unset so no caller passes ``require_owner``."""
        ...
