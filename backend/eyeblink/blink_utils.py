from __future__ import annotations

import math
from dataclasses import dataclass


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp value to inclusive range [lower, upper]."""
    return max(lower, min(upper, value))


@dataclass(frozen=True)
class ThresholdClassifier:
    """Turns a closure confidence into an open/closed decision."""

    threshold: float
    clamp_input: bool = True

    def is_closed(self, confidence: float) -> bool:
        # A confidence equal to the threshold counts as open.
        if math.isnan(confidence):
            confidence = 0.0
        if self.clamp_input:
            confidence = clamp(confidence)
        return confidence > self.threshold


@dataclass(frozen=True)
class CooldownGate:
    """Debounce window after an emitted event.

    The gate keeps no state of its own: the caller owns the timestamp of the
    last emitted event and decides when to commit a new one.
    """

    duration: float

    def is_open(self, now: float, last_event_ts: float | None) -> bool:
        if last_event_ts is None:
            return True
        return now - last_event_ts >= self.duration
