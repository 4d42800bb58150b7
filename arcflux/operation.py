"""
ArcFlux Operations - Transaction Lifecycle Pipeline
===================================================

This module drives one write request from submission to a terminal outcome
and exposes every intermediate state to the caller.

Lifecycle
---------

```
Idle ─> Sending ─> Sent ─> Mined(result)
  │        │         │
  └────────┴─────────┴──> Failed(error)
```

- **Sending**: emitted as soon as `send_transaction()` is called
- **Sent**: the endpoint accepted the request; the transaction hash is known
  but execution is not final yet
- **Mined**: the receipt confirmed execution and the result mapper succeeded
- **Failed**: terminal, carries a classified error

The timeline is append-only: states are never revisited and never skipped
backwards. Observers that subscribe late are replayed the states they missed.

Result Mapping
--------------

The mapper turns a successful receipt into the operation's result. Whether a
missing event is an error is the mapper's call: executing a proposal may
legitimately emit nothing, while staking must see its `Stake` event and
raises `MissingResultMarker` otherwise.

Error Classification
--------------------

Endpoints report reverts without a reason. Before a revert is surfaced, the
optional classifier may perform supplementary reads to replace the bare
`RevertedError` with a specific cause (see `arcflux.classify`). A classifier
that fails, or returns something that is not an exception, leaves the raw
error in place; classification never leaves an operation hanging.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from .endpoints import Receipt, TransactionRequest, WriteEndpoint
from .errors import (
    ArcError,
    LedgerError,
    OperationStateError,
    RevertedError,
    SubmissionError,
)

T = TypeVar("T")

ResultMapper = Callable[[Receipt], T]
ErrorClassifier = Callable[
    [BaseException], Union[BaseException, Awaitable[BaseException]]
]
RequestFactory = Callable[
    [], Union[TransactionRequest, Awaitable[TransactionRequest]]
]


class OperationStage(Enum):
    IDLE = "idle"
    SENDING = "sending"
    SENT = "sent"
    MINED = "mined"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (OperationStage.MINED, OperationStage.FAILED)


_TRANSITIONS = {
    OperationStage.IDLE: {OperationStage.SENDING, OperationStage.FAILED},
    OperationStage.SENDING: {OperationStage.SENT, OperationStage.FAILED},
    OperationStage.SENT: {OperationStage.MINED, OperationStage.FAILED},
    OperationStage.MINED: set(),
    OperationStage.FAILED: set(),
}


@dataclass(frozen=True)
class OperationState(Generic[T]):
    """Snapshot of an operation at one point of its lifecycle."""

    stage: OperationStage
    tx_hash: Optional[str] = None
    receipt: Optional[Receipt] = None
    result: Optional[T] = None
    error: Optional[BaseException] = None
    confirmations: int = 0


class Operation(Generic[T]):
    """
    The lifecycle of one write request.

    Usage:
        operation = proposal.stake(ProposalOutcome.PASS, 100)

        # callback style; late subscribers are replayed missed states
        operation.subscribe(lambda state: print(state.stage))

        # or iterate until a terminal state
        async for state in operation:
            ...

        # or just wait for the outcome (raises the classified error)
        stake = await operation
    """

    def __init__(self, description: str = ""):
        self.description = description
        self._timeline: List[OperationState[T]] = [OperationState(OperationStage.IDLE)]
        self._observers: List[Callable[[OperationState[T]], None]] = []
        self._done = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> OperationState[T]:
        return self._timeline[-1]

    @property
    def stage(self) -> OperationStage:
        return self.state.stage

    @property
    def timeline(self) -> Tuple[OperationState[T], ...]:
        return tuple(self._timeline)

    @property
    def done(self) -> bool:
        return self.stage.terminal

    def advance(self, state: OperationState[T]) -> None:
        """Append `state` to the timeline and notify observers."""
        current = self.stage
        if state.stage not in _TRANSITIONS[current]:
            raise OperationStateError(
                f"Cannot move {self.description or 'operation'} from {current.value} to {state.stage.value}"
            )
        self._timeline.append(state)
        for observer in tuple(self._observers):
            self._notify(observer, state)
        if state.stage.terminal:
            self._done.set()

    def subscribe(
        self, observer: Callable[[OperationState[T]], None]
    ) -> Callable[[OperationState[T]], None]:
        """Replay the timeline to `observer`, then follow new states."""
        for state in tuple(self._timeline):
            self._notify(observer, state)
        if not self.done:
            self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Callable[[OperationState[T]], None]) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    async def result(self) -> T:
        """Wait for a terminal state; return the result or raise the error."""
        await self._done.wait()
        state = self.state
        if state.stage is OperationStage.FAILED:
            raise state.error
        return state.result

    def __await__(self):
        return self.result().__await__()

    async def __aiter__(self) -> AsyncIterator[OperationState[T]]:
        queue: "asyncio.Queue[OperationState[T]]" = asyncio.Queue()
        self.subscribe(queue.put_nowait)
        try:
            while True:
                state = await queue.get()
                yield state
                if state.stage.terminal:
                    return
        finally:
            self.unsubscribe(queue.put_nowait)

    def _notify(self, observer, state: OperationState[T]) -> None:
        try:
            observer(state)
        except Exception as e:
            logging.error(f"Error in operation observer: {e}")

    def __repr__(self) -> str:
        label = f" {self.description}" if self.description else ""
        return f"<Operation{label} {self.stage.value}>"


# ============================================================================
# PIPELINE
# ============================================================================


def send_transaction(
    endpoint: WriteEndpoint,
    request: Union[TransactionRequest, RequestFactory],
    mapper: ResultMapper,
    classifier: Optional[ErrorClassifier] = None,
    description: str = "",
) -> Operation:
    """
    Submit `request` and return its Operation, already in the Sending state.

    `request` may be a factory (sync or async) for work that has to happen
    after Sending is reported, such as storing a description on IPFS.

    Must be called from a running event loop.
    """
    loop = asyncio.get_running_loop()
    operation: Operation = Operation(description)
    operation.advance(OperationState(OperationStage.SENDING))
    operation._task = loop.create_task(
        _drive(operation, endpoint, request, mapper, classifier)
    )
    return operation


async def _drive(operation, endpoint, request, mapper, classifier) -> None:
    try:
        await _run(operation, endpoint, request, mapper, classifier)
    except asyncio.CancelledError:
        if not operation.done:
            operation.advance(
                OperationState(OperationStage.FAILED, error=ArcError("Operation was cancelled"))
            )
        raise
    except Exception as e:
        logging.error(f"Unexpected error in {operation!r}: {e}")
        if not operation.done:
            operation.advance(
                OperationState(OperationStage.FAILED, tx_hash=operation.state.tx_hash, error=e)
            )


async def _run(operation, endpoint, request, mapper, classifier) -> None:
    def fail(error: BaseException, tx_hash: Optional[str] = None, receipt=None) -> None:
        operation.advance(
            OperationState(OperationStage.FAILED, tx_hash=tx_hash, receipt=receipt, error=error)
        )

    try:
        if callable(request):
            request = request()
            if inspect.isawaitable(request):
                request = await request
        tx_hash = await endpoint.submit(request)
    except Exception as e:
        fail(await _classify(_translate(e), classifier))
        return
    operation.advance(OperationState(OperationStage.SENT, tx_hash=tx_hash))

    try:
        receipt = await endpoint.wait_for_receipt(tx_hash)
    except Exception as e:
        fail(await _classify(_translate(e, tx_hash), classifier), tx_hash)
        return

    if not receipt.status:
        raw = RevertedError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)
        fail(await _classify(raw, classifier), tx_hash, receipt)
        return

    try:
        result = mapper(receipt)
    except Exception as e:
        fail(e, tx_hash, receipt)
        return
    operation.advance(
        OperationState(OperationStage.MINED, tx_hash=tx_hash, receipt=receipt, result=result)
    )


def _translate(error: BaseException, tx_hash: Optional[str] = None) -> BaseException:
    """Map a raw endpoint failure onto the error taxonomy."""
    if not isinstance(error, LedgerError):
        return error
    if error.is_revert:
        return RevertedError(f"Transaction reverted: {error.reason}", cause=error, tx_hash=tx_hash)
    return SubmissionError(f"Transaction rejected: {error.reason}", cause=error)


async def _classify(
    error: BaseException, classifier: Optional[ErrorClassifier]
) -> BaseException:
    if classifier is None or not isinstance(error, RevertedError):
        return error
    try:
        classified = classifier(error)
        if inspect.isawaitable(classified):
            classified = await classified
    except Exception as e:
        logging.error(f"Error classification failed, keeping the original error: {e}")
        return error
    if not isinstance(classified, BaseException):
        logging.error(f"Error classifier returned {classified!r}, keeping the original error")
        return error
    if classified is not error and isinstance(classified, RevertedError):
        if classified.cause is None:
            classified.cause = error
        if classified.tx_hash is None:
            classified.tx_hash = error.tx_hash
    return classified
