"""
Phase ledger for Merkle-committed vesting rewards.

Each vesting phase commits to a list of (recipient, amount) allocations
through a Merkle root. The owner funds phases up to their declared total
and may pause them or move their start time before they open. Recipients
claim once per phase by presenting a proof of their allocation.

Every state-changing operation is all-or-nothing: bookkeeping is recorded
in an undo journal and unwound if any later step, including the token
transfer, raises.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, Sequence

from ..core.address_checksum import normalize_address, require_nonzero_address
from ..core.config import Config
from ..core.exceptions import (
    ActivationPassedError,
    ClaimRejection,
    FundingOvercommitError,
    InvalidAmountError,
    InvalidPhaseError,
    PauseStateError,
    StorageError,
    TokenTransferError,
    ValidationError,
    VestingError,
)
from ..core.manager_interfaces import Authority, TokenLedger
from . import merkle

logger = logging.getLogger("merkle_vesting.blockchain.vesting_ledger")

ProofLike = Sequence[merkle.HashLike]

_REJECTION_MESSAGES = {
    ClaimRejection.NOT_ACTIVE: "Vesting {index} has not started yet",
    ClaimRejection.PAUSED: "Vesting {index} is paused",
    ClaimRejection.ALREADY_CLAIMED: "Reward already claimed from vesting {index}",
    ClaimRejection.INVALID_PROOF: "Incorrect claim details",
    ClaimRejection.INSUFFICIENT_BALANCE: "Vesting {index} balance does not exceed the claimed amount",
}


@dataclass
class VestingPhase:
    merkle_root: bytes
    start_time: int
    total_reward: int
    balance: int = 0
    paused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "merkle_root": "0x" + self.merkle_root.hex(),
            "start_time": self.start_time,
            "total_reward": str(self.total_reward),
            "balance": str(self.balance),
            "paused": self.paused,
        }


@dataclass
class LedgerEvent:
    """A record of one committed ledger action."""

    event_type: str
    args: dict[str, Any]
    timestamp: int = field(default_factory=lambda: int(time.time()))


class VestingLedger:
    """
    Holds vesting phases, their reward balances and per-recipient claim flags.

    Administrative operations take the acting ``caller`` and check it against
    the injected authority. ``claim`` always pays the caller.
    """

    def __init__(
        self,
        token: TokenLedger,
        authority: Authority,
        roots: Sequence[merkle.HashLike],
        start_times: Sequence[int],
        total_rewards: Sequence[int],
        time_provider: Callable[[], int] | None = None,
        address: str | None = None,
    ):
        if token is None:
            raise ValidationError("Token ledger is required")
        if authority is None:
            raise ValidationError("Authority is required")
        if not roots or not start_times or not total_rewards:
            raise ValidationError("Initial vesting arrays cannot be empty")
        if not (len(roots) == len(start_times) == len(total_rewards)):
            raise ValidationError(
                "Initial vesting arrays must have equal length",
                details={
                    "roots": len(roots),
                    "start_times": len(start_times),
                    "total_rewards": len(total_rewards),
                },
            )

        self.token = token
        self.authority = authority
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = threading.RLock()
        self._journal: list[Callable[[], None]] | None = None

        self._vestings: list[VestingPhase] = []
        # recipient -> indices of phases already claimed
        self._claimed: dict[str, set[int]] = {}
        self.events: list[LedgerEvent] = []

        first_root = merkle.to_hash(roots[0])
        self.address = (
            require_nonzero_address(address, "ledger address")
            if address
            else "0x" + merkle.keccak256(
                authority.owner.encode() + first_root + str(start_times[0]).encode()
            )[-20:].hex()
        )

        for root, start_time, total_reward in zip(roots, start_times, total_rewards):
            self._append_vesting(root, start_time, total_reward)

        logger.info(
            "VestingLedger initialized with %d vestings at %s",
            len(self._vestings),
            self.address[:10],
            extra={"event": "vesting.ledger_initialized", "vestings": len(self._vestings)},
        )

    # ==================== Time & Journal ====================

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """
        Run a block under the ledger lock with rollback on any exception.

        Nested blocks join the outermost one. The journal only holds in-memory
        bookkeeping; token calls are issued last, once per operation, so a
        failure never has to take tokens back.
        """
        with self._lock:
            if self._journal is not None:
                yield
                return

            self._journal = []
            events_mark = len(self.events)
            try:
                yield
            except BaseException as exc:
                journal, self._journal = self._journal, None
                failures = []
                try:
                    for undo in reversed(journal):
                        try:
                            undo()
                        except Exception as undo_exc:
                            logger.error(
                                "Rollback step failed: %s",
                                undo_exc,
                                extra={"event": "vesting.rollback_failed"},
                            )
                            failures.append(undo_exc)
                finally:
                    del self.events[events_mark:]
                if failures:
                    raise failures[0] from exc
                raise
            self._journal = None

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    def _set_balance(self, vesting: VestingPhase, balance: int) -> None:
        previous = vesting.balance
        vesting.balance = balance
        self._record(lambda: setattr(vesting, "balance", previous))

    def _set_paused(self, vesting: VestingPhase, paused: bool) -> None:
        previous = vesting.paused
        vesting.paused = paused
        self._record(lambda: setattr(vesting, "paused", previous))

    def _set_start_time(self, vesting: VestingPhase, start_time: int) -> None:
        previous = vesting.start_time
        vesting.start_time = start_time
        self._record(lambda: setattr(vesting, "start_time", previous))

    def _mark_claimed(self, recipient: str, index: int) -> None:
        self._claimed.setdefault(recipient, set()).add(index)
        self._record(lambda: self._claimed[recipient].discard(index))

    def _emit(self, event_type: str, **args: Any) -> None:
        self.events.append(LedgerEvent(event_type, args, self._current_time()))

    # ==================== Validation Helpers ====================

    def _get_vesting(self, index: Any) -> VestingPhase:
        if not isinstance(index, int) or isinstance(index, bool):
            raise InvalidPhaseError(index)
        if index < 0 or index >= len(self._vestings):
            raise InvalidPhaseError(index, details={"vesting_count": len(self._vestings)})
        return self._vestings[index]

    @staticmethod
    def _validate_time(value: Any, label: str) -> int:
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{label} must be a non-negative integer timestamp")
        return value

    def _append_vesting(self, root: merkle.HashLike, start_time: int, total_reward: int) -> int:
        root_bytes = merkle.to_hash(root)
        start_time = self._validate_time(start_time, "Start time")
        total_reward = merkle.validate_amount(total_reward)
        if total_reward == 0:
            raise InvalidAmountError("Total reward must be greater than zero")

        index = len(self._vestings)
        self._vestings.append(VestingPhase(root_bytes, start_time, total_reward))
        self._record(self._vestings.pop)
        self._emit(
            "VestingAdded",
            index=index,
            merkle_root="0x" + root_bytes.hex(),
            start_time=start_time,
            total_reward=total_reward,
        )
        logger.info(
            "Vesting %d added: start=%d total_reward=%d",
            index,
            start_time,
            total_reward,
            extra={"event": "vesting.added", "index": index},
        )
        return index

    # ==================== Token Calls ====================

    # Each operation makes exactly one token call, after all of its bookkeeping

    def _pull_tokens(self, funder: str, amount: int) -> None:
        if not self.token.transfer_from(self.address, funder, self.address, amount):
            raise TokenTransferError(
                "Token transferFrom returned failure",
                details={"from": funder, "amount": amount},
            )

    def _send_tokens(self, recipient: str, amount: int) -> None:
        if not self.token.transfer(self.address, recipient, amount):
            raise TokenTransferError(
                "Token transfer returned failure",
                details={"to": recipient, "amount": amount},
            )

    # ==================== Queries ====================

    @property
    def vesting_count(self) -> int:
        return len(self._vestings)

    def get_vesting(self, index: int) -> VestingPhase:
        """Return a copy of vesting ``index``."""
        with self._lock:
            return replace(self._get_vesting(index))

    def is_claimed(self, recipient: str, index: int) -> bool:
        with self._lock:
            return index in self._claimed.get(normalize_address(recipient), ())

    def token_balance(self) -> int:
        """Tokens currently held by the ledger, as reported by the token."""
        return self.token.balance_of(self.address)

    @staticmethod
    def verify(recipient: str, amount: int, proof: ProofLike, root: merkle.HashLike) -> bool:
        return merkle.verify(recipient, amount, proof, root)

    # ==================== Administration ====================

    def add_vesting(
        self, caller: str, root: merkle.HashLike, start_time: int, total_reward: int
    ) -> int:
        """Append a new vesting phase (owner only) and return its index."""
        self.authority.require_owner(caller)
        with self._atomic():
            return self._append_vesting(root, start_time, total_reward)

    def add_reward(self, caller: str, index: int, amount: int) -> None:
        """Fund vesting ``index`` with ``amount`` pulled from the caller."""
        self.add_rewards(caller, [index], [amount])

    def add_rewards(self, caller: str, indices: Sequence[int], amounts: Sequence[int]) -> None:
        """
        Fund several vestings in one all-or-nothing operation (owner only).

        Each vesting's balance may never exceed its total reward. Tokens are
        pulled from ``caller`` with transfer_from, so the caller must have
        approved the ledger address beforehand.

        Raises:
            AuthorizationError: If caller is not the owner
            ValidationError: If the arrays are empty or differ in length
            InvalidPhaseError: If an index does not exist
            FundingOvercommitError: If a balance would exceed the total reward
        """
        self.authority.require_owner(caller)
        funder = normalize_address(caller)
        if not indices or len(indices) != len(amounts):
            raise ValidationError(
                "Reward arrays must be non-empty and of equal length",
                details={"indices": len(indices), "amounts": len(amounts)},
            )

        funded = []
        with self._atomic():
            for index, amount in zip(indices, amounts):
                vesting = self._get_vesting(index)
                merkle.validate_amount(amount)
                new_balance = vesting.balance + amount
                if new_balance > vesting.total_reward:
                    logger.warning(
                        "Funding rejected for vesting %d: %d + %d exceeds total reward %d",
                        index,
                        vesting.balance,
                        amount,
                        vesting.total_reward,
                        extra={"event": "vesting.funding_rejected", "index": index},
                    )
                    raise FundingOvercommitError(
                        f"Reward for vesting {index} would exceed its total reward",
                        details={
                            "index": index,
                            "balance": vesting.balance,
                            "amount": amount,
                            "total_reward": vesting.total_reward,
                        },
                    )
                self._set_balance(vesting, new_balance)
                self._emit("RewardAdded", index=index, amount=amount, funder=funder)
                funded.append((index, amount, new_balance, vesting.total_reward))

            self._pull_tokens(funder, sum(amounts))

        for index, amount, balance, total_reward in funded:
            logger.info(
                "Vesting %d funded with %d (balance %d/%d)",
                index,
                amount,
                balance,
                total_reward,
                extra={"event": "vesting.funded", "index": index, "amount": amount},
            )

    def set_start_time(self, caller: str, index: int, start_time: int) -> None:
        """Move a vesting's start time; only allowed before it has started."""
        self.authority.require_owner(caller)
        start_time = self._validate_time(start_time, "Start time")
        with self._atomic():
            vesting = self._get_vesting(index)
            now = self._current_time()
            if now >= vesting.start_time:
                raise ActivationPassedError(
                    f"Vesting {index} has already started",
                    details={"index": index, "start_time": vesting.start_time, "now": now},
                )
            previous = vesting.start_time
            self._set_start_time(vesting, start_time)
            self._emit("StartTimeChanged", index=index, previous=previous, start_time=start_time)
        logger.info(
            "Vesting %d start time moved from %d to %d",
            index,
            previous,
            start_time,
            extra={"event": "vesting.start_time_changed", "index": index},
        )

    def pause_vesting(self, caller: str, index: int) -> None:
        self._change_pause(caller, index, True)

    def unpause_vesting(self, caller: str, index: int) -> None:
        self._change_pause(caller, index, False)

    def _change_pause(self, caller: str, index: int, paused: bool) -> None:
        self.authority.require_owner(caller)
        with self._atomic():
            vesting = self._get_vesting(index)
            if vesting.paused == paused:
                raise PauseStateError(
                    f"Vesting {index} is already {'paused' if paused else 'unpaused'}",
                    details={"index": index, "paused": paused},
                )
            self._set_paused(vesting, paused)
            self._emit("VestingPaused" if paused else "VestingUnpaused", index=index)
        logger.warning(
            "Vesting %d %s by %s",
            index,
            "paused" if paused else "unpaused",
            normalize_address(caller)[:10],
            extra={"event": "vesting.pause_changed", "index": index, "paused": paused},
        )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        previous = self.authority.owner
        self.authority.transfer_ownership(caller, new_owner)
        with self._atomic():
            self._emit("OwnershipTransferred", previous=previous, new_owner=self.authority.owner)

    def renounce_ownership(self, caller: str) -> None:
        previous = self.authority.owner
        self.authority.renounce_ownership(caller)
        with self._atomic():
            self._emit("OwnershipTransferred", previous=previous, new_owner=self.authority.owner)

    # ==================== Claims ====================

    def check_claim(
        self, caller: str, amount: int, index: int, proof: ProofLike
    ) -> ClaimRejection | None:
        """
        Evaluate the claim guards in order without changing state.

        Returns:
            The first failing guard, or None if the claim would succeed
        """
        recipient = normalize_address(caller)
        merkle.validate_amount(amount)
        with self._lock:
            try:
                vesting = self._get_vesting(index)
            except InvalidPhaseError:
                return ClaimRejection.INVALID_PHASE
            if self._current_time() < vesting.start_time:
                return ClaimRejection.NOT_ACTIVE
            if vesting.paused:
                return ClaimRejection.PAUSED
            if index in self._claimed.get(recipient, ()):
                return ClaimRejection.ALREADY_CLAIMED
            try:
                verified = merkle.verify(recipient, amount, proof, vesting.merkle_root)
            except ValidationError:
                verified = False
            if not verified:
                return ClaimRejection.INVALID_PROOF
            if vesting.balance <= amount:
                return ClaimRejection.INSUFFICIENT_BALANCE
            return None

    def _rejection_error(
        self, rejection: ClaimRejection, recipient: str, amount: int, index: Any
    ) -> VestingError:
        details = {"recipient": recipient, "amount": amount, "index": index}
        error_class = rejection.error_class
        if rejection is ClaimRejection.INVALID_PHASE:
            return error_class(index, details=details)
        if rejection is ClaimRejection.INSUFFICIENT_BALANCE:
            details["balance"] = self._vestings[index].balance
        return error_class(_REJECTION_MESSAGES[rejection].format(index=index), details=details)

    def _apply_claim(self, recipient: str, amount: int, index: int, proof: ProofLike) -> None:
        """Run the guards and record one claim; the payout is left to the caller."""
        rejection = self.check_claim(recipient, amount, index, proof)
        if rejection is not None:
            logger.warning(
                "Claim rejected for %s on vesting %s: %s",
                recipient[:10],
                index,
                rejection.value,
                extra={"event": "vesting.claim_rejected", "reason": rejection.value},
            )
            raise self._rejection_error(rejection, recipient, amount, index)

        vesting = self._vestings[index]
        self._mark_claimed(recipient, index)
        self._set_balance(vesting, vesting.balance - amount)
        self._emit("Claimed", index=index, recipient=recipient, amount=amount)

    def _log_claim(self, recipient: str, amount: int, index: int) -> None:
        logger.info(
            "Claimed %d from vesting %d by %s",
            amount,
            index,
            recipient[:10],
            extra={"event": "vesting.claimed", "index": index, "amount": amount},
        )

    def claim(self, caller: str, amount: int, index: int, proof: ProofLike) -> None:
        """
        Claim ``amount`` from vesting ``index`` for the caller.

        The phase balance must be strictly greater than ``amount``.

        Raises:
            InvalidPhaseError, PhaseNotActiveError, PhasePausedError,
            AlreadyClaimedError, ProofVerificationError,
            InsufficientPhaseBalanceError: first failing guard, in that order
            TokenError: If the token transfer fails (state is rolled back)
        """
        recipient = require_nonzero_address(caller, "caller")
        with self._atomic():
            self._apply_claim(recipient, amount, index, proof)
            self._send_tokens(recipient, amount)
        self._log_claim(recipient, amount, index)

    def claim_multiple(self, caller: str, claims: Sequence[tuple[int, int, ProofLike]]) -> None:
        """
        Apply several (amount, index, proof) claims in order, all or none.

        Every claim is checked against the state left by the ones before it.
        Only when the whole batch passes is the total paid out, in a single
        transfer.
        """
        recipient = require_nonzero_address(caller, "caller")
        if not claims:
            raise ValidationError("Claim batch cannot be empty")
        with self._atomic():
            for amount, index, proof in claims:
                self._apply_claim(recipient, amount, index, proof)
            self._send_tokens(recipient, sum(amount for amount, _, _ in claims))
        for amount, index, _ in claims:
            self._log_claim(recipient, amount, index)

    # ==================== Persistence ====================

    def to_dict(self) -> dict[str, Any]:
        """Serialize ledger state (phases and claim flags) to a dictionary."""
        with self._lock:
            return {
                "address": self.address,
                "owner": self.authority.owner,
                "vestings": [vesting.to_dict() for vesting in self._vestings],
                "claimed": {
                    recipient: sorted(indices)
                    for recipient, indices in self._claimed.items()
                    if indices
                },
            }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        token: TokenLedger,
        authority: Authority,
        time_provider: Callable[[], int] | None = None,
    ) -> "VestingLedger":
        """Rebuild a ledger from ``to_dict`` output."""
        try:
            vestings = data["vestings"]
            ledger = cls(
                token,
                authority,
                roots=[v["merkle_root"] for v in vestings],
                start_times=[v["start_time"] for v in vestings],
                total_rewards=[int(v["total_reward"]) for v in vestings],
                time_provider=time_provider,
                address=data["address"],
            )
            for vesting, stored in zip(ledger._vestings, vestings):
                balance = int(stored["balance"])
                if balance > vesting.total_reward:
                    raise StorageError(f"Stored balance exceeds total reward: {stored}")
                vesting.balance = balance
                vesting.paused = bool(stored["paused"])
            for recipient, indices in data.get("claimed", {}).items():
                for index in indices:
                    ledger._get_vesting(index)
                ledger._claimed[normalize_address(recipient)] = set(indices)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Malformed ledger snapshot: {exc}") from exc
        ledger.events.clear()
        return ledger

    def save(self, storage: Any, key: str | None = None) -> None:
        """Persist a snapshot to a StorageManager-style key-value store."""
        storage.set(key or Config.STATE_KEY, self.to_dict())
        logger.info(
            "Ledger state saved (%d vestings)",
            len(self._vestings),
            extra={"event": "vesting.state_saved"},
        )

    @classmethod
    def load(
        cls,
        storage: Any,
        token: TokenLedger,
        authority: Authority,
        key: str | None = None,
        time_provider: Callable[[], int] | None = None,
    ) -> "VestingLedger":
        data = storage.get(key or Config.STATE_KEY)
        if data is None:
            raise StorageError(f"No ledger state stored under {key or Config.STATE_KEY!r}")
        return cls.from_dict(data, token, authority, time_provider)
