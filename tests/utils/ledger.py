"""
In-memory ledger fakes.

Each fake implements one of the collaborator protocols in `arcflux.endpoints`
and records how it was called, so tests can assert on upstream traffic.
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Dict, List, Optional

from arcflux import EventData, Receipt, TransactionRequest

OWNER = "0x" + "11" * 20
SPENDER = "0x" + "22" * 20
DAO = "0x" + "33" * 20
VOTING_MACHINE = "0x" + "44" * 20
GEN = "0x" + "55" * 20
REDEEMER = "0x" + "66" * 20
CONTRIBUTION_REWARD = "0x" + "77" * 20
GENERIC_SCHEME = "0x" + "88" * 20
SCHEME_REGISTRAR = "0x" + "99" * 20
GENESIS_PROTOCOL = VOTING_MACHINE

CONTRACTS = {
    "GEN": GEN,
    "GenesisProtocol": GENESIS_PROTOCOL,
    "Redeemer": REDEEMER,
    "ContributionReward": CONTRIBUTION_REWARD,
    "GenericScheme": GENERIC_SCHEME,
    "SchemeRegistrar": SCHEME_REGISTRAR,
}


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeReader:
    """
    ReadEndpoint returning scripted values.

    `values[key]` is either a constant or a list consumed one read at a time
    (the last element repeats). Keys listed in `errors` raise on read; keys
    listed in `gates` block until the matching event is set.
    """

    def __init__(self, values: Optional[Dict[Any, Any]] = None):
        self.values: Dict[Any, Any] = dict(values or {})
        self.errors: Dict[Any, BaseException] = {}
        self.calls: Dict[Any, int] = defaultdict(int)
        self.gates: Dict[Any, deque] = defaultdict(deque)

    def script(self, key, *values) -> None:
        self.values[key] = list(values)

    async def read(self, key):
        self.calls[key] += 1
        value = self._next(key)
        if self.gates[key]:
            await self.gates[key].popleft().wait()
        if key in self.errors:
            raise self.errors[key]
        return value

    def _next(self, key):
        scripted = self.values.get(key, 0)
        if isinstance(scripted, list):
            if len(scripted) > 1:
                return scripted.pop(0)
            return scripted[0]
        return scripted

    def total_calls(self) -> int:
        return sum(self.calls.values())


class _ManualHandle:
    def __init__(self, feed: "ManualFeed"):
        self._feed = feed
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self._feed.unsubscribed += 1


class ManualFeed:
    """EventSource driven by the test."""

    def __init__(self):
        self.subscribed = 0
        self.unsubscribed = 0
        self._listeners: List = []

    @property
    def active(self) -> int:
        return self.subscribed - self.unsubscribed

    def subscribe(self, on_event, on_error):
        self.subscribed += 1
        handle = _ManualHandle(self)
        self._listeners.append((handle, on_event, on_error))
        return handle

    def tick(self, event: Any = None) -> None:
        for handle, on_event, _ in list(self._listeners):
            if handle.active:
                on_event(event)

    def fail(self, error: BaseException) -> None:
        for handle, _, on_error in list(self._listeners):
            if handle.active:
                on_error(error)


class FakeLedger:
    """
    WriteEndpoint and EntityReader.

    Each submitted request is answered from `outcomes` in order. An outcome is
    a Receipt-building dict of events, a `LedgerError` to raise at submit, or
    a `("receipt_error", exc)` / `("reverted", None)` pair for failures after
    the request was accepted.
    """

    def __init__(self):
        self.requests: List[TransactionRequest] = []
        self.outcomes: deque = deque()
        self.entities: Dict[Any, Dict[str, Any]] = {}
        self.entity_reads = 0
        self._pending: Dict[str, Any] = {}

    def will_succeed(self, **events) -> None:
        self.outcomes.append(
            {name: EventData(name, values) for name, values in events.items()}
        )

    def will_fail_on_submit(self, error: BaseException) -> None:
        self.outcomes.append(error)

    def will_revert(self) -> None:
        self.outcomes.append(("reverted", None))

    def will_fail_on_receipt(self, error: BaseException) -> None:
        self.outcomes.append(("receipt_error", error))

    async def submit(self, request: TransactionRequest) -> str:
        self.requests.append(request)
        outcome = self.outcomes.popleft() if self.outcomes else {}
        if isinstance(outcome, BaseException):
            raise outcome
        tx_hash = "0x%064x" % len(self.requests)
        self._pending[tx_hash] = outcome
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Receipt:
        await asyncio.sleep(0)
        outcome = self._pending.pop(tx_hash)
        if isinstance(outcome, tuple):
            kind, error = outcome
            if kind == "receipt_error":
                raise error
            return Receipt(tx_hash, status=False)
        return Receipt(tx_hash, status=True, events=outcome)

    async def read_entity(self, contract, entity_id):
        self.entity_reads += 1
        return self.entities.get((contract, entity_id))


class FakeIpfs:
    def __init__(self):
        self.added: List[bytes] = []
        self.pinned: List[str] = []

    async def add(self, payload: bytes) -> str:
        self.added.append(payload)
        return f"Qm{len(self.added):044d}"

    async def pin(self, cid: str) -> None:
        self.pinned.append(cid)
