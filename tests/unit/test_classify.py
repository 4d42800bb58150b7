"""
Tests for revert classification.
"""

import asyncio
import logging

import pytest

from arcflux import (
    AlreadyFinalized,
    InsufficientAllowance,
    InsufficientBalance,
    NotFound,
    RevertClassifier,
    RevertedError,
    SubmissionError,
)
from arcflux.classify import callbacks_missing, proposer_missing, state_executed
from tests.utils import OWNER

LIVE = {"proposer": OWNER, "callbacks": OWNER, "state": 3}


class Probes:
    """Async probes with call counters."""

    def __init__(self, entity=LIVE, balance=1000, allowance=1000):
        self._entity = entity
        self._balance = balance
        self._allowance = allowance
        self.calls = []

    async def entity(self):
        self.calls.append("entity")
        if isinstance(self._entity, Exception):
            raise self._entity
        return self._entity

    async def balance(self):
        self.calls.append("balance")
        return self._balance

    async def allowance(self):
        self.calls.append("allowance")
        return self._allowance

    def classifier(self, amount=None, **kwargs):
        return RevertClassifier(
            subject="proposal 0x1",
            entity=self.entity,
            balance=self.balance,
            allowance=self.allowance,
            amount=amount,
            **kwargs,
        )


def classify(classifier, error):
    return asyncio.run(classifier(error))


@pytest.mark.unit
class TestRevertClassifier:
    """Each cause is checked in a fixed order."""

    def setup_method(self):
        self.raw = RevertedError("Transaction 0xabc reverted", tx_hash="0xabc")

    def test_missing_entity_is_not_found(self):
        result = classify(Probes(entity=None).classifier(), self.raw)
        assert isinstance(result, NotFound)
        assert result.cause is self.raw
        assert result.tx_hash == "0xabc"

    def test_null_proposer_is_not_found(self):
        entity = dict(LIVE, proposer="0x" + "0" * 40)
        assert isinstance(classify(Probes(entity=entity).classifier(), self.raw), NotFound)

    def test_executed_entity_is_already_finalized(self):
        entity = dict(LIVE, state=2)
        result = classify(Probes(entity=entity).classifier(), self.raw)
        assert isinstance(result, AlreadyFinalized)

    def test_low_balance(self):
        result = classify(Probes(balance=99).classifier(amount=100), self.raw)
        assert isinstance(result, InsufficientBalance)
        assert result.balance == 99
        assert result.required == 100

    def test_low_allowance(self):
        result = classify(Probes(allowance=50).classifier(amount=100), self.raw)
        assert isinstance(result, InsufficientAllowance)
        assert result.allowance == 50
        assert result.required == 100

    def test_no_cause_found_returns_raw_error(self):
        probes = Probes()
        assert classify(probes.classifier(amount=100), self.raw) is self.raw
        assert probes.calls == ["entity", "balance", "allowance"]

    def test_existence_checked_before_balance(self):
        probes = Probes(entity=None, balance=0, allowance=0)
        result = classify(probes.classifier(amount=100), self.raw)
        assert isinstance(result, NotFound)
        assert probes.calls == ["entity"]

    def test_finalized_checked_before_balance(self):
        probes = Probes(entity=dict(LIVE, state=2), balance=0, allowance=0)
        result = classify(probes.classifier(amount=100), self.raw)
        assert isinstance(result, AlreadyFinalized)
        assert probes.calls == ["entity"]

    def test_balance_checked_before_allowance(self):
        probes = Probes(balance=0, allowance=0)
        result = classify(probes.classifier(amount=100), self.raw)
        assert isinstance(result, InsufficientBalance)
        assert "allowance" not in probes.calls

    def test_amount_probes_skipped_without_amount(self):
        probes = Probes(balance=0, allowance=0)
        assert classify(probes.classifier(), self.raw) is self.raw
        assert probes.calls == ["entity"]

    def test_failing_probe_returns_raw_error(self, caplog):
        probes = Probes(entity=ConnectionError("index offline"))
        with caplog.at_level(logging.ERROR):
            assert classify(probes.classifier(), self.raw) is self.raw
        assert "index offline" in caplog.text

    def test_only_bare_reverts_are_classified(self):
        probes = Probes(entity=None)
        already = NotFound("Unknown proposal")
        rejected = SubmissionError("Transaction rejected")
        assert classify(probes.classifier(), already) is already
        assert classify(probes.classifier(), rejected) is rejected
        assert probes.calls == []

    def test_custom_existence_rule(self):
        entity = dict(LIVE, callbacks="0x" + "0" * 40)
        probes = Probes(entity=entity)
        result = classify(probes.classifier(is_missing=callbacks_missing), self.raw)
        assert isinstance(result, NotFound)


@pytest.mark.unit
class TestEntityRules:
    def test_proposer_missing(self):
        assert proposer_missing(None)
        assert proposer_missing({})
        assert proposer_missing({"proposer": "0x" + "0" * 40})
        assert not proposer_missing({"proposer": OWNER})

    def test_callbacks_missing(self):
        assert callbacks_missing(None)
        assert not callbacks_missing({"callbacks": OWNER})

    def test_state_executed(self):
        assert state_executed({"state": 2})
        assert state_executed({"state": "2"})
        assert not state_executed({"state": 4})
        assert not state_executed({"state": "Executed"})
        assert not state_executed({})
