"""
Revert classification.

A reverted transaction comes back from the endpoint without a usable reason.
`RevertClassifier` reconstructs the cause with targeted reads, always in the
same order:

1. does the target entity exist at all          -> NotFound
2. has it already been finalized                -> AlreadyFinalized
3. does the sender hold enough tokens           -> InsufficientBalance
4. has the sender approved enough for spending  -> InsufficientAllowance
5. otherwise the raw RevertedError is returned unchanged

Each step only runs when its probe was supplied. A probe that fails ends
classification and the raw error is returned.
"""

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from .errors import (
    AlreadyFinalized,
    InsufficientAllowance,
    InsufficientBalance,
    NotFound,
    RevertedError,
)
from .keys import NULL_ADDRESS

EntityProbe = Callable[[], Awaitable[Optional[Mapping[str, Any]]]]
AmountProbe = Callable[[], Awaitable[int]]

# voting machine state of an executed proposal
EXECUTED_STATE = 2


def proposer_missing(entity: Optional[Mapping[str, Any]]) -> bool:
    if entity is None:
        return True
    return str(entity.get("proposer") or NULL_ADDRESS).lower() == NULL_ADDRESS


def callbacks_missing(entity: Optional[Mapping[str, Any]]) -> bool:
    if entity is None:
        return True
    return str(entity.get("callbacks") or NULL_ADDRESS).lower() == NULL_ADDRESS


def state_executed(entity: Mapping[str, Any]) -> bool:
    try:
        return int(entity.get("state", -1)) == EXECUTED_STATE
    except (TypeError, ValueError):
        return False


class RevertClassifier:
    """
    Error classifier for `send_transaction`.

    Args:
        subject: human readable name of the target, used in messages
        entity: reads the target entity (None when it does not exist)
        is_missing: decides from the entity whether it exists
        is_finalized: decides from the entity whether it is finalized
        balance: reads the sender's balance
        allowance: reads the sender's approved allowance
        amount: the amount the transaction needed
    """

    def __init__(
        self,
        subject: str = "entity",
        entity: Optional[EntityProbe] = None,
        is_missing: Callable[[Optional[Mapping[str, Any]]], bool] = proposer_missing,
        is_finalized: Callable[[Mapping[str, Any]], bool] = state_executed,
        balance: Optional[AmountProbe] = None,
        allowance: Optional[AmountProbe] = None,
        amount: Optional[int] = None,
    ):
        self.subject = subject
        self._entity = entity
        self._is_missing = is_missing
        self._is_finalized = is_finalized
        self._balance = balance
        self._allowance = allowance
        self.amount = amount

    async def __call__(self, error: BaseException) -> BaseException:
        # only bare reverts are classified
        if type(error) is not RevertedError:
            return error
        try:
            classified = await self._classify(error)
        except Exception as e:
            logging.error(f"Could not classify revert for {self.subject}: {e}")
            return error
        return classified if classified is not None else error

    async def _classify(self, error: RevertedError) -> Optional[RevertedError]:
        context = dict(cause=error, tx_hash=error.tx_hash)

        if self._entity is not None:
            entity = await self._entity()
            if self._is_missing(entity):
                return NotFound(f"Unknown {self.subject}", **context)
            if self._is_finalized(entity):
                return AlreadyFinalized(f"{self.subject} was already executed", **context)

        if self.amount is None:
            return None
        required = int(self.amount)

        if self._balance is not None:
            balance = int(await self._balance())
            if balance < required:
                return InsufficientBalance(
                    f"Insufficient balance for {required} (balance is {balance})",
                    balance=balance,
                    required=required,
                    **context,
                )

        if self._allowance is not None:
            allowance = int(await self._allowance())
            if allowance < required:
                return InsufficientAllowance(
                    f"Insufficient allowance for {required} (allowance is {allowance})",
                    allowance=allowance,
                    required=required,
                    **context,
                )
        return None
