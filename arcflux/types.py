"""
ArcFlux shared enums.

Names follow the ledger index, which reports stages and outcomes by their
CamelCase member names ("PreBoosted", "Pass").
"""

from enum import Enum


class _IndexedEnum(Enum):
    """Enum parsed from the index's CamelCase names."""

    @classmethod
    def parse(cls, raw):
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, int):
            return cls(raw)
        for member in cls:
            if member.label == raw:
                return member
        raise ValueError(f"Unexpected value for {cls.__name__}: {raw!r}")

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class ProposalOutcome(_IndexedEnum):
    NONE = 0
    PASS = 1
    FAIL = 2


class ProposalStage(_IndexedEnum):
    EXPIRED_IN_QUEUE = 0
    EXECUTED = 1
    QUEUED = 2
    PRE_BOOSTED = 3
    BOOSTED = 4
    QUIET_ENDING_PERIOD = 5


class ExecutionState(_IndexedEnum):
    NONE = 0
    QUEUE_BAR_CROSSED = 1
    QUEUE_TIME_OUT = 2
    PRE_BOOSTED_BAR_CROSSED = 3
    BOOSTED_TIME_OUT = 4
    BOOSTED_BAR_CROSSED = 5
