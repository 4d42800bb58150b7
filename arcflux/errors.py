"""
ArcFlux Errors
==============

Exception hierarchy shared by the subscription multiplexer and the
transaction operation pipeline.

Endpoints report failures as a structured `LedgerError` (code, reason,
details). The pipeline turns those into the classified errors below; callers
catch `ArcError` for anything raised by this package.
"""

from dataclasses import dataclass
from typing import Any, Optional

# Codes carried by LedgerError
REVERTED = "reverted"
REJECTED = "rejected"


class ArcError(Exception):
    """Base class for all ArcFlux errors."""

    pass


@dataclass(eq=False)
class LedgerError(ArcError):
    """Raw failure reported by a ledger endpoint."""

    code: str
    reason: str
    details: Optional[Any] = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    @property
    def is_revert(self) -> bool:
        return self.code == REVERTED


class ConfigurationError(ArcError):
    """Raised when configuration values are missing or malformed."""

    pass


class UnknownContractError(ConfigurationError):
    """Raised when a contract name has no configured address."""

    pass


class InvalidAddressError(ArcError, ValueError):
    """Raised when a string is not a well-formed ledger address."""

    pass


class ThresholdError(ArcError, ValueError):
    """Raised when threshold arithmetic receives unusable inputs."""

    pass


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


class SubscriptionError(ArcError):
    """
    The shared feed failed.

    Delivered to every registered key; the feed is discarded and a later
    observe() starts a fresh one.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ReadError(ArcError):
    """A read for one observed key failed during a tick."""

    def __init__(self, key: Any, cause: BaseException):
        super().__init__(f"Reading {key!r} failed: {cause}")
        self.key = key
        self.cause = cause


# ============================================================================
# OPERATIONS
# ============================================================================


class OperationStateError(ArcError):
    """Raised when an operation would move backwards in its lifecycle."""

    pass


class SubmissionError(ArcError):
    """The write endpoint rejected the request before execution."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RevertedError(ArcError):
    """
    Execution of the transaction reverted.

    A bare RevertedError is the unclassified case: the classifier could not
    attach a more specific cause. Subclasses carry the cause found by the
    supplementary reads.
    """

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.tx_hash = tx_hash


class NotFound(RevertedError):
    """The target entity does not exist."""

    pass


class AlreadyFinalized(RevertedError):
    """The target entity has already been executed."""

    pass


class InsufficientBalance(RevertedError):
    """The sender's balance is below the amount required."""

    def __init__(self, message: str, balance: int, required: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.balance = balance
        self.required = required


class InsufficientAllowance(RevertedError):
    """The sender has not approved the spender for the amount required."""

    def __init__(self, message: str, allowance: int, required: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.allowance = allowance
        self.required = required


class MissingResultMarker(ArcError):
    """A receipt succeeded but did not contain the expected event."""

    def __init__(self, event_name: str, available: Any = ()):
        names = ", ".join(sorted(available)) or "none"
        super().__init__(f'No "{event_name}" event was found (events: {names})')
        self.event_name = event_name


class UnknownProposalTypeError(ArcError, ValueError):
    """A proposal record does not match any known proposal variant."""

    pass


class InvalidOptionsError(ArcError, ValueError):
    """Raised when an operation is requested with inconsistent options."""

    pass
