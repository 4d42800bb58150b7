"""Result records built by operation mappers from receipt events."""

from dataclasses import dataclass
from typing import Optional

from .keys import Address
from .types import ProposalOutcome


@dataclass(frozen=True)
class Stake:
    """
    A stake placed on a proposal.

    `id` and `created_at` are only known once the index has processed the
    block, so records built from a receipt leave them empty.
    """

    staker: Address
    outcome: ProposalOutcome
    amount: int
    proposal_id: str
    id: Optional[str] = None
    created_at: Optional[int] = None


@dataclass(frozen=True)
class Vote:
    voter: Address
    outcome: ProposalOutcome
    amount: int
    proposal_id: str
    dao: Address
    id: Optional[str] = None
    created_at: Optional[int] = None
