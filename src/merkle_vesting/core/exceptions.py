"""
Exception hierarchy for the Merkle vesting distributor.

Every rejected operation surfaces as one of these typed exceptions so that
callers can tell apart authorization failures, malformed input, phase state
preconditions, over-funding, bad proofs and token-ledger failures without
parsing messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class VestingError(Exception):
    """Base exception for all distributor errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried unchanged
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError, PermissionError):
    """Raised when the caller is not the administrative authority."""
    pass


# ==================== Validation Errors ====================


class ValidationError(VestingError, ValueError):
    """Raised when operation inputs are malformed.

    Covers empty or mismatched initialization arrays, zero reward totals,
    invalid addresses and out-of-range phase indices.
    """
    pass


class InvalidPhaseError(ValidationError):
    """Raised when a phase index does not reference an existing phase."""

    def __init__(self, phase_index: Any, **kwargs: Any) -> None:
        super().__init__(f"Invalid vesting index: {phase_index}", **kwargs)
        self.phase_index = phase_index


class InvalidAddressError(ValidationError):
    """Raised for malformed or zero addresses."""
    pass


class InvalidAmountError(ValidationError):
    """Raised for negative, zero (where forbidden) or out-of-range amounts."""
    pass


class ProofVerificationError(ValidationError):
    """Raised when a Merkle proof does not reproduce the committed root.

    A wrong amount, wrong recipient and a malformed proof are reported the
    same way.
    """
    pass


# ==================== State Precondition Errors ====================


class StateError(VestingError):
    """Raised when a phase is not in a state that permits the operation."""
    pass


class PhaseNotActiveError(StateError):
    """Raised when claiming before the phase start time."""
    pass


class PhasePausedError(StateError):
    """Raised when claiming from a paused phase."""
    pass


class PauseStateError(StateError):
    """Raised when pausing a paused phase or unpausing an active one."""
    pass


class ActivationPassedError(StateError):
    """Raised when rescheduling a phase whose start time has been reached."""
    pass


class AlreadyClaimedError(StateError):
    """Raised when a recipient has already claimed from a phase."""
    pass


# ==================== Accounting Errors ====================


class FundingError(VestingError):
    """Raised when a funding operation cannot be applied."""
    pass


class FundingOvercommitError(FundingError):
    """Raised when funding would push a phase balance above its total reward."""
    pass


class InsufficientPhaseBalanceError(VestingError):
    """Raised when the phase balance is not strictly greater than the claim."""
    pass


# ==================== Collaborator Errors ====================


class TokenError(VestingError):
    """Raised by the token ledger when a balance operation fails."""
    pass


class TokenTransferError(TokenError):
    """Raised when a token transfer reports failure."""
    pass


class StorageError(VestingError):
    """Raised when ledger state cannot be persisted or restored."""
    pass


# ==================== Claim Rejections ====================


class ClaimRejection(Enum):
    """Reasons a claim is rejected, in the order the guards are evaluated."""

    INVALID_PHASE = "invalid_phase"
    NOT_ACTIVE = "not_active"
    PAUSED = "paused"
    ALREADY_CLAIMED = "already_claimed"
    INVALID_PROOF = "invalid_proof"
    INSUFFICIENT_BALANCE = "insufficient_balance"

    @property
    def error_class(self) -> type:
        return _REJECTION_ERRORS[self]


_REJECTION_ERRORS = {
    ClaimRejection.INVALID_PHASE: InvalidPhaseError,
    ClaimRejection.NOT_ACTIVE: PhaseNotActiveError,
    ClaimRejection.PAUSED: PhasePausedError,
    ClaimRejection.ALREADY_CLAIMED: AlreadyClaimedError,
    ClaimRejection.INVALID_PROOF: ProofVerificationError,
    ClaimRejection.INSUFFICIENT_BALANCE: InsufficientPhaseBalanceError,
}


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VestingError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, InvalidPhaseError):
        context["phase_index"] = exc.phase_index

    return context
