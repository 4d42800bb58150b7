"""
ArcFlux Context
===============

`Arc` is where an application starts: it holds the configuration and the
endpoint objects, owns the process-wide subscription multiplexer, and hands
out tokens and proposals bound to itself.

```python
arc = Arc(load_config(), reader=node, writer=node, entities=node)

handle = await arc.eth_balance(account, on_next=print)
operation = arc.proposal(proposal_id, dao, voting_machine).stake(ProposalOutcome.PASS, 100)
stake = await operation
handle.cancel()
await arc.aclose()
```
"""

import logging
from typing import Any, Callable, List, Mapping, Optional, Union

from .config import ArcConfig
from .endpoints import (
    EntityReader,
    EventSource,
    IpfsStore,
    ReadEndpoint,
    TransactionRequest,
    WriteEndpoint,
)
from .errors import ConfigurationError, UnknownContractError
from .feed import PollingBlockFeed
from .keys import Address, EthBalanceKey, ObservedKey, check_address
from .multiplexer import ErrorListener, Listener, SubscriptionHandle, SubscriptionMultiplexer
from .operation import ErrorClassifier, Operation, RequestFactory, ResultMapper, send_transaction
from .proposal import Proposal
from .token import Token


class Arc:
    """
    Configuration and shared state of one client.

    Args:
        config: providers, contract addresses and the default account
        reader: point-in-time reads of observed keys
        source: shared change feed; defaults to polling `reader.block_number()`
        writer: write endpoint for transactions
        entities: entity reads used to classify reverts
        ipfs: storage for proposal descriptions
    """

    def __init__(
        self,
        config: ArcConfig,
        reader: ReadEndpoint,
        source: Optional[EventSource] = None,
        writer: Optional[WriteEndpoint] = None,
        entities: Optional[EntityReader] = None,
        ipfs: Optional[IpfsStore] = None,
    ):
        self.config = config
        self.reader = reader
        self.writer = writer
        self.entities = entities
        self.ipfs = ipfs
        self.account: Optional[Address] = config.default_account

        if source is None:
            block_number = getattr(reader, "block_number", None)
            if block_number is None:
                raise ConfigurationError(
                    "No event source given and the reader has no block_number() to poll"
                )
            source = PollingBlockFeed(block_number, config.poll_interval)
        self.multiplexer = SubscriptionMultiplexer(reader, source)

        if not config.contract_addresses:
            logging.warning(
                "No contract addresses given to Arc: expect most write operations to fail!"
            )
        self._operations: List[Operation] = []

    # ------------------------------------------------------------------
    # Contracts and accounts
    # ------------------------------------------------------------------

    def contract_address(self, name: str) -> Address:
        addresses = self.config.contract_addresses
        if not addresses:
            raise UnknownContractError("Cannot get contract: no contract addresses set")
        try:
            return addresses[name]
        except KeyError:
            raise UnknownContractError(
                f"No contract named {name} could be found in the provided contract addresses"
            ) from None

    def contract_name(self, address: Address) -> Optional[str]:
        address = check_address(address)
        for name, known in self.config.contract_addresses.items():
            if known == address:
                return name
        return None

    def set_account(self, address: Address) -> None:
        self.account = check_address(address)

    def gen_token(self) -> Token:
        return Token(self.contract_address("GEN"), self)

    def token(self, address: Address) -> Token:
        return Token(address, self)

    def proposal(self, id: str, dao: Address, voting_machine: Address) -> Proposal:
        return Proposal(id, dao, voting_machine, self)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(self, key: ObservedKey) -> Any:
        return await self.reader.read(key)

    async def read_entity(self, contract: Address, entity_id: str) -> Optional[Mapping[str, Any]]:
        if self.entities is None:
            raise ConfigurationError("No entity reader configured")
        return await self.entities.read_entity(contract, entity_id)

    async def observe(
        self,
        key: ObservedKey,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        return await self.multiplexer.observe(key, on_next, on_error)

    async def eth_balance(
        self,
        owner: Address,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        return await self.multiplexer.observe(EthBalanceKey(owner), on_next, on_error)

    async def allowance(
        self,
        owner: Address,
        spender: Address,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        """How much GEN `spender` may spend on behalf of `owner`, live."""
        return await self.gen_token().allowance(owner, spender, on_next, on_error)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_ipfs_data(self, payload: bytes) -> str:
        """Store and pin `payload`; returns its content hash."""
        if self.ipfs is None:
            raise ConfigurationError("No IPFS store set on Arc - cannot save data on IPFS")
        logging.debug("Saving data on IPFS...")
        cid = await self.ipfs.add(payload)
        await self.ipfs.pin(cid)
        logging.debug(f"Data saved successfully as {cid}")
        return cid

    def send_transaction(
        self,
        request: Union[TransactionRequest, RequestFactory],
        mapper: ResultMapper,
        classifier: Optional[ErrorClassifier] = None,
        description: str = "",
    ) -> Operation:
        if self.writer is None:
            raise ConfigurationError("No write endpoint configured")
        operation = send_transaction(self.writer, request, mapper, classifier, description)
        self._operations.append(operation)
        operation.subscribe(self._forget_when_done(operation))
        return operation

    def _forget_when_done(self, operation: Operation) -> Callable:
        def observer(state) -> None:
            if state.stage.terminal and operation in self._operations:
                self._operations.remove(operation)

        return observer

    @property
    def pending_operations(self) -> List[Operation]:
        return list(self._operations)

    async def aclose(self) -> None:
        await self.multiplexer.aclose()
