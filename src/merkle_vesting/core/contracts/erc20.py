"""
In-memory ERC20 token used as the reward asset held by the vesting ledger.

Provides the token-ledger collaborator the distributor consumes:
- balance_of, transfer, transfer_from (the TokenLedger protocol)
- approve / allowance so funders can authorise the ledger to pull rewards
- owner-only minting, so test and staging setups can seed balances
- Transfer/Approval event log

Every amount is range-checked to uint256, recipients and spenders may not be
the zero address, and balances or allowances never underflow.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict

from ..address_checksum import ZERO_ADDRESS, keccak256, normalize_address
from ..exceptions import TokenError

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


@dataclass
class TokenEvent:
    """Transfer or Approval record."""

    event_type: str
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    Minimal ERC20 token.

    All balances and allowances are held in memory and can be snapshotted
    with ``to_dict`` / ``from_dict``. Failures raise TokenError, which the
    vesting ledger propagates unchanged to its caller.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    # Only the owner may mint
    owner: str = ""

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            seed = f"erc20:{self.name}:{self.symbol}:{self.owner.lower()}".encode()
            self.address = "0x" + keccak256(seed)[-20:].hex()
        self.address = normalize_address(self.address)
        if self.owner:
            self.owner = normalize_address(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize_address(owner), {}).get(
            normalize_address(spender), 0
        )

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TokenError: If the recipient is the zero address, the amount is
                out of range or the sender's balance is too low
        """
        self._move(normalize_address(sender), normalize_address(recipient), amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Set ``spender``'s allowance over ``owner``'s tokens to ``amount``."""
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        self._require_nonzero(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner_norm, spender_norm, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Move ``amount`` from ``from_addr`` to ``to_addr`` on ``spender``'s allowance.

        An allowance of UINT256_MAX is treated as unlimited and is left as is.

        Raises:
            TokenError: If allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        self._validate_amount(amount)

        granted = self.allowance(from_norm, spender_norm)
        if granted < amount:
            raise TokenError(
                f"ERC20: insufficient allowance ({granted} < {amount})",
                details={"owner": from_norm, "spender": spender_norm, "amount": amount},
            )

        self._move(from_norm, normalize_address(to_addr), amount)
        if granted != UINT256_MAX:
            self.allowances[from_norm][spender_norm] = granted - amount
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create ``amount`` new tokens for ``to`` (owner only)."""
        if not self.owner or normalize_address(minter) != self.owner:
            raise TokenError("ERC20: caller is not owner", details={"caller": minter})

        to_norm = normalize_address(to)
        self._require_nonzero(to_norm, "recipient")
        self._validate_amount(amount)
        if self.total_supply + amount > UINT256_MAX:
            raise TokenError("ERC20: mint would overflow total supply")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "Minted %d %s to %s",
            amount,
            self.symbol,
            to_norm[:10],
            extra={"event": "erc20.mint", "total_supply": self.total_supply},
        )
        return True

    # ==================== Helpers ====================

    def _move(self, source: str, target: str, amount: int) -> None:
        self._require_nonzero(target, "recipient")
        self._validate_amount(amount)

        available = self.balances.get(source, 0)
        if available < amount:
            raise TokenError(
                f"ERC20: transfer amount exceeds balance ({amount} > {available})",
                details={"from": source, "amount": amount, "balance": available},
            )
        self.balances[source] = available - amount
        self.balances[target] = self.balances.get(target, 0) + amount
        self._emit("Transfer", source, target, amount)

        logger.debug(
            "Moved %d %s from %s to %s",
            amount,
            self.symbol,
            source[:10],
            target[:10],
            extra={"event": "erc20.transfer"},
        )

    @staticmethod
    def _require_nonzero(address: str, label: str) -> None:
        if address == ZERO_ADDRESS:
            raise TokenError(f"ERC20: {label} is zero address")

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TokenError("ERC20: amount must be an integer")
        if not 0 <= amount <= UINT256_MAX:
            raise TokenError(f"ERC20: amount out of uint256 range: {amount}")

    def _emit(self, event_type: str, source: str, target: str, amount: int) -> None:
        self.events.append(TokenEvent(event_type, source, target, amount))

    # ==================== Serialization ====================

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": str(self.total_supply),
            "address": self.address,
            "owner": self.owner,
            # Amounts as strings so JSON consumers keep all 256 bits
            "balances": {k: str(v) for k, v in self.balances.items()},
            "allowances": {
                k: {s: str(v) for s, v in inner.items()} for k, inner in self.allowances.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ERC20Token":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=int(data.get("total_supply", 0)),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        token.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        token.allowances = {
            k: {s: int(v) for s, v in inner.items()}
            for k, inner in data.get("allowances", {}).items()
        }
        return token
