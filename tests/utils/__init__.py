"""
Test utilities for ArcFlux.
"""

from .ledger import (
    CONTRACTS,
    DAO,
    GEN,
    OWNER,
    SPENDER,
    VOTING_MACHINE,
    FakeIpfs,
    FakeLedger,
    FakeReader,
    ManualFeed,
    settle,
)

__all__ = [
    "CONTRACTS",
    "DAO",
    "GEN",
    "OWNER",
    "SPENDER",
    "VOTING_MACHINE",
    "FakeIpfs",
    "FakeLedger",
    "FakeReader",
    "ManualFeed",
    "settle",
]
