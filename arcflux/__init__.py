"""
ArcFlux - Live Ledger State and Transaction Operations

A client-side coordination layer between an application and a ledger: many
callers share one live subscription per piece of on-chain state, and write
transactions run through an observable lifecycle that ends in a result or a
classified error.
"""

# Shared live state
from .multiplexer import SubscriptionHandle, SubscriptionMultiplexer, values_equal
from .feed import PollingBlockFeed
from .keys import (
    NULL_ADDRESS,
    AllowanceKey,
    EthBalanceKey,
    ObservedKey,
    TokenBalanceKey,
    check_address,
    is_address,
)

# Transaction operations
from .operation import Operation, OperationStage, OperationState, send_transaction
from .classify import RevertClassifier
from .endpoints import EventData, Receipt, TransactionRequest

# Threshold arithmetic
from .thresholds import (
    PRECISION,
    StakeDeltas,
    ThresholdInputs,
    decode_threshold,
    downstake_needed_to_queue,
    encode_threshold,
    stake_deltas,
    upstake_needed_to_preboost,
)

# Domain
from .context import Arc
from .config import ArcConfig, configure_logging, load_config
from .proposal import (
    ContributionReward,
    GenericScheme,
    Proposal,
    ProposalCreateOptions,
    ProposalState,
    ProposalType,
    SchemeRegistrar,
    SchemeRegistrarKind,
)
from .records import Stake, Vote
from .token import Token
from .types import ExecutionState, ProposalOutcome, ProposalStage

# Exceptions
from .errors import (
    AlreadyFinalized,
    ArcError,
    ConfigurationError,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAddressError,
    InvalidOptionsError,
    LedgerError,
    MissingResultMarker,
    NotFound,
    OperationStateError,
    ReadError,
    RevertedError,
    SubmissionError,
    SubscriptionError,
    ThresholdError,
    UnknownContractError,
    UnknownProposalTypeError,
)

__all__ = [
    # Shared live state
    "SubscriptionMultiplexer",
    "SubscriptionHandle",
    "PollingBlockFeed",
    "values_equal",
    "ObservedKey",
    "EthBalanceKey",
    "TokenBalanceKey",
    "AllowanceKey",
    "NULL_ADDRESS",
    "is_address",
    "check_address",
    # Transaction operations
    "Operation",
    "OperationStage",
    "OperationState",
    "send_transaction",
    "RevertClassifier",
    "TransactionRequest",
    "Receipt",
    "EventData",
    # Threshold arithmetic
    "PRECISION",
    "ThresholdInputs",
    "StakeDeltas",
    "encode_threshold",
    "decode_threshold",
    "upstake_needed_to_preboost",
    "downstake_needed_to_queue",
    "stake_deltas",
    # Domain
    "Arc",
    "ArcConfig",
    "load_config",
    "configure_logging",
    "Proposal",
    "ProposalState",
    "ProposalCreateOptions",
    "ProposalType",
    "ContributionReward",
    "GenericScheme",
    "SchemeRegistrar",
    "SchemeRegistrarKind",
    "Stake",
    "Vote",
    "Token",
    "ProposalOutcome",
    "ProposalStage",
    "ExecutionState",
    # Exceptions
    "ArcError",
    "ConfigurationError",
    "UnknownContractError",
    "InvalidAddressError",
    "InvalidOptionsError",
    "ThresholdError",
    "LedgerError",
    "SubscriptionError",
    "ReadError",
    "SubmissionError",
    "RevertedError",
    "NotFound",
    "AlreadyFinalized",
    "InsufficientBalance",
    "InsufficientAllowance",
    "MissingResultMarker",
    "OperationStateError",
    "UnknownProposalTypeError",
]
