"""
ArcFlux Thresholds - Fixed-Point Stake Arithmetic
=================================================

This module computes how many tokens must be staked on a proposal to move it
across the promotion threshold of its voting machine, in either direction.

The voting machine promotes a queued proposal once

    stakes_for / stakes_against > threshold

and the threshold is reported by the ledger index in fixed-point form: the
ratio multiplied by `PRECISION` (2**40) and truncated to an integer. All the
arithmetic below stays in that representation, with Python's arbitrary
precision integers, so multiplying the ratio against large token amounts never
touches floating point.

Key Features
------------

- **Exact**: integer arithmetic throughout; `Fraction` for decoding
- **Signed**: negative results mean the condition is already met, and by how
  much. Nothing is clamped to zero.
- **Stage-aware**: `stake_deltas()` only computes the delta that applies to the
  proposal's current stage and reports zero for the other one.

Basic Usage
-----------

```python
from arcflux.thresholds import ThresholdInputs, encode_threshold, upstake_needed_to_preboost

inputs = ThresholdInputs(stakes_for=100, stakes_against=300, threshold=encode_threshold("0.5"))
upstake_needed_to_preboost(inputs)  # 50
```
"""

from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Union

from .errors import ThresholdError
from .types import ProposalStage

PRECISION = 2**40

Ratio = Union[int, str, float, Decimal, Fraction]


def _div(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    if denominator == 0:
        raise ThresholdError("Division by a zero threshold")
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def encode_threshold(ratio: Ratio, precision: int = PRECISION) -> int:
    """
    Encode a ratio in fixed-point form.

    Floats are converted exactly (their binary value), strings and Decimals
    through their decimal value. The result is truncated toward zero.
    """
    try:
        exact = Fraction(ratio)
    except (TypeError, ValueError, ZeroDivisionError) as e:
        raise ThresholdError(f"Cannot encode threshold {ratio!r}: {e}") from e
    return _div(exact.numerator * precision, exact.denominator)


def decode_threshold(fixed: int, precision: int = PRECISION) -> Fraction:
    """Decode a fixed-point ratio exactly."""
    return Fraction(int(fixed), precision)


def threshold_to_float(fixed: int, precision: int = PRECISION) -> float:
    return float(decode_threshold(fixed, precision))


@dataclass(frozen=True)
class ThresholdInputs:
    """
    Inputs of the threshold computations.

    Attributes:
        stakes_for: tokens staked on the Pass outcome
        stakes_against: tokens staked on the Fail outcome
        threshold: promotion ratio, fixed-point encoded with `precision`
        precision: fixed-point scale
    """

    stakes_for: int
    stakes_against: int
    threshold: int
    precision: int = PRECISION

    def __post_init__(self):
        if self.precision <= 0:
            raise ThresholdError(f"Precision must be positive, got {self.precision}")

    @classmethod
    def from_ratio(
        cls, stakes_for: int, stakes_against: int, ratio: Ratio
    ) -> "ThresholdInputs":
        return cls(int(stakes_for), int(stakes_against), encode_threshold(ratio))

    @property
    def ratio(self) -> Fraction:
        return decode_threshold(self.threshold, self.precision)


def upstake_needed_to_preboost(inputs: ThresholdInputs) -> int:
    """
    Tokens to stake on Pass before a queued proposal is pre-boosted.

    threshold * stakes_against / P - stakes_for. Negative when the proposal
    already crossed the threshold.
    """
    scaled = inputs.threshold * inputs.stakes_against
    return _div(scaled, inputs.precision) - inputs.stakes_for


def downstake_needed_to_queue(inputs: ThresholdInputs) -> int:
    """
    Tokens to stake on Fail before a pre-boosted proposal drops back to the queue.

    stakes_for * P / threshold - stakes_against. Negative when the proposal is
    already below the threshold.
    """
    if inputs.threshold == 0:
        raise ThresholdError("A zero threshold has no downstake bound")
    scaled = inputs.stakes_for * inputs.precision
    return _div(scaled, inputs.threshold) - inputs.stakes_against


@dataclass(frozen=True)
class StakeDeltas:
    upstake_needed_to_preboost: int = 0
    downstake_needed_to_queue: int = 0


def stake_deltas(stage: ProposalStage, inputs: ThresholdInputs) -> StakeDeltas:
    """
    Compute the delta that applies to `stage`.

    Only queued proposals have an upstake target and only pre-boosted ones a
    downstake target; every other stage reports zero for both.
    """
    if stage is ProposalStage.QUEUED:
        return StakeDeltas(upstake_needed_to_preboost=upstake_needed_to_preboost(inputs))
    if stage is ProposalStage.PRE_BOOSTED:
        return StakeDeltas(downstake_needed_to_queue=downstake_needed_to_queue(inputs))
    return StakeDeltas()
