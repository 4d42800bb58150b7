"""
Integration tests for the Arc context and tokens.
"""

import asyncio
import logging

import pytest

from arcflux import (
    AllowanceKey,
    Arc,
    ArcConfig,
    ConfigurationError,
    EthBalanceKey,
    InvalidAddressError,
    OperationStage,
    PollingBlockFeed,
    Token,
    TokenBalanceKey,
    UnknownContractError,
)
from tests.utils import GEN, OWNER, SPENDER, VOTING_MACHINE, FakeReader, settle


class BlockReader(FakeReader):
    def __init__(self):
        super().__init__()
        self.block = 1

    async def block_number(self):
        return self.block


@pytest.mark.integration
class TestArc:
    """Wiring of configuration, endpoints and the shared multiplexer."""

    def test_default_source_polls_reader(self, config):
        arc = Arc(config, BlockReader())
        assert isinstance(arc.multiplexer._source, PollingBlockFeed)
        assert arc.multiplexer._source.interval == config.poll_interval

    def test_reader_without_block_number_needs_a_source(self, config):
        with pytest.raises(ConfigurationError):
            Arc(config, FakeReader())

    def test_missing_contract_addresses_warns(self, reader, feed, caplog):
        with caplog.at_level(logging.WARNING):
            arc = Arc(ArcConfig(), reader, source=feed)
        assert "No contract addresses" in caplog.text
        with pytest.raises(UnknownContractError):
            arc.contract_address("GEN")

    def test_contract_lookup(self, arc):
        assert arc.contract_address("GEN") == GEN
        assert arc.contract_name(GEN) == "GEN"
        assert arc.contract_name(SPENDER) is None
        with pytest.raises(UnknownContractError, match="Avatar"):
            arc.contract_address("Avatar")

    def test_account(self, arc):
        assert arc.account == OWNER
        arc.set_account(SPENDER)
        assert arc.account == SPENDER
        with pytest.raises(InvalidAddressError):
            arc.set_account("carol")

    def test_observers_share_one_read(self, arc, reader, feed):
        reader.values[EthBalanceKey(OWNER)] = 10**18
        seen = []

        async def scenario():
            h1 = await arc.eth_balance(OWNER, seen.append)
            h2 = await arc.eth_balance(OWNER.upper().replace("0X", "0x"), seen.append)
            assert arc.multiplexer.ref_count(EthBalanceKey(OWNER)) == 2
            h1.cancel()
            h2.cancel()
            await arc.aclose()

        asyncio.run(scenario())

        assert seen == [10**18, 10**18]
        assert reader.calls[EthBalanceKey(OWNER)] == 1
        assert feed.active == 0

    def test_live_allowance_uses_gen_token(self, arc, reader, feed):
        key = AllowanceKey(GEN, OWNER, VOTING_MACHINE)
        reader.script(key, 0, 500)
        seen = []

        async def scenario():
            await arc.allowance(OWNER, VOTING_MACHINE, seen.append)
            feed.tick()
            await settle()
            await arc.aclose()

        asyncio.run(scenario())

        assert seen == [0, 500]

    def test_read_entity_requires_entity_reader(self, config, reader, feed):
        arc = Arc(config, reader, source=feed)

        async def scenario():
            with pytest.raises(ConfigurationError):
                await arc.read_entity(VOTING_MACHINE, "0x1")

        asyncio.run(scenario())

    def test_send_requires_writer(self, config, reader, feed):
        arc = Arc(config, reader, source=feed)

        async def scenario():
            with pytest.raises(ConfigurationError):
                arc.gen_token().transfer(SPENDER, 1)

        asyncio.run(scenario())

    def test_pending_operations_until_terminal(self, arc, ledger):
        ledger.will_succeed()

        async def scenario():
            operation = arc.gen_token().transfer(SPENDER, 1)
            assert arc.pending_operations == [operation]
            await operation
            return operation

        operation = asyncio.run(scenario())

        assert operation.stage is OperationStage.MINED
        assert arc.pending_operations == []


@pytest.mark.integration
class TestToken:
    def test_requires_address(self, arc):
        with pytest.raises(ValueError):
            Token("", arc)

    def test_keys(self, arc):
        token = arc.gen_token()
        assert token.balance_key(OWNER) == TokenBalanceKey(GEN, OWNER)
        assert token.allowance_key(OWNER, SPENDER) == AllowanceKey(GEN, OWNER, SPENDER)

    def test_balance_of_is_live(self, arc, reader, feed):
        token = arc.gen_token()
        reader.script(token.balance_key(OWNER), 5, 5, 7)
        seen = []

        async def scenario():
            handle = await token.balance_of(OWNER, seen.append)
            for _ in range(2):
                feed.tick()
                await settle()
            handle.cancel()

        asyncio.run(scenario())

        assert seen == [5, 7]

    def test_point_reads(self, arc, reader):
        token = arc.gen_token()
        reader.values[token.balance_key(OWNER)] = "42"
        reader.values[token.allowance_key(OWNER, SPENDER)] = 3

        async def scenario():
            return await token.read_balance(OWNER), await token.read_allowance(OWNER, SPENDER)

        assert asyncio.run(scenario()) == (42, 3)

    def test_write_requests(self, arc, ledger):
        token = arc.gen_token()
        for _ in range(3):
            ledger.will_succeed()

        async def scenario():
            await token.mint(SPENDER, 10)
            await token.transfer(SPENDER, 20)
            return await token.approve_for_staking(30)

        receipt = asyncio.run(scenario())

        assert receipt.status is True
        methods = [(r.method, r.args) for r in ledger.requests]
        assert methods == [
            ("mint", (SPENDER, "10")),
            ("transfer", (SPENDER, "20")),
            ("approve", (VOTING_MACHINE, "30")),
        ]
        assert all(r.contract == GEN and r.sender == OWNER for r in ledger.requests)
