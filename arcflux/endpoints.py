"""
External collaborator contracts.

ArcFlux does not talk to the network itself. The application supplies objects
satisfying these protocols: a point-in-time reader, a change-notification
source, a write endpoint, and optionally an entity reader (used only to
classify failures) and an IPFS store.
"""

from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Mapping,
    Optional,
    Protocol,
    Tuple,
)

from .keys import Address, ObservedKey


@dataclass(frozen=True)
class TransactionRequest:
    """Description of one contract call to submit."""

    contract: Address
    method: str
    args: Tuple[Any, ...] = ()
    sender: Optional[Address] = None
    value: int = 0


@dataclass(frozen=True)
class EventData:
    name: str
    return_values: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, item: str) -> Any:
        return self.return_values[item]


@dataclass(frozen=True)
class Receipt:
    """Final execution result of a transaction."""

    tx_hash: str
    status: bool = True
    events: Mapping[str, EventData] = field(default_factory=dict)
    block_number: Optional[int] = None

    def event(self, name: str) -> Optional[EventData]:
        return self.events.get(name)


class ReadEndpoint(Protocol):
    async def read(self, key: ObservedKey) -> Any: ...


class FeedHandle(Protocol):
    def unsubscribe(self) -> None: ...


class EventSource(Protocol):
    """Single stream of "something changed" notifications, e.g. new blocks."""

    def subscribe(
        self,
        on_event: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> FeedHandle: ...


class WriteEndpoint(Protocol):
    async def submit(self, request: TransactionRequest) -> str:
        """Send the request; returns the transaction hash once accepted."""
        ...

    async def wait_for_receipt(self, tx_hash: str) -> Receipt: ...


class EntityReader(Protocol):
    async def read_entity(
        self, contract: Address, entity_id: str
    ) -> Optional[Mapping[str, Any]]: ...


class IpfsStore(Protocol):
    async def add(self, payload: bytes) -> str: ...

    async def pin(self, cid: str) -> None: ...

