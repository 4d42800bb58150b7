"""
Shared pytest fixtures for ArcFlux tests.
"""

import pytest

from arcflux import Arc, ArcConfig
from tests.utils import CONTRACTS, OWNER, FakeIpfs, FakeLedger, FakeReader, ManualFeed


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def feed():
    return ManualFeed()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def ipfs():
    return FakeIpfs()


@pytest.fixture
def config():
    return ArcConfig(contract_addresses=CONTRACTS, default_account=OWNER)


@pytest.fixture
def arc(config, reader, feed, ledger, ipfs):
    return Arc(config, reader, source=feed, writer=ledger, entities=ledger, ipfs=ipfs)
