from __future__ import annotations

import logging
import math
import time
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .blink_utils import CooldownGate, ThresholdClassifier
from .frames import BlinkFrame, first_face, user_perspective

logger = logging.getLogger(__name__)


class EyeBlink(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


class BlinkListener(Protocol):
    def blink_detected(self, side: EyeBlink) -> None:
        ...


@dataclass(frozen=True)
class BlinkConfig:
    """
    Immutable detector settings.

    sensitivity:
    - 0.5 ~ 0.6: recommended. Catches natural blinks, ignores half-closed eyes.
    - 0.3 ~ 0.4: catches partial blinks too, at the cost of false positives.
    - 0.7 or higher: needs a firm closure; users may feel blinks are missed.
    """

    detect_both_eyes: bool
    sensitivity: float = 0.6
    cool_down: float = 1.0
    clamp_confidence: bool = True

    def __post_init__(self) -> None:
        if self.cool_down < 0:
            raise ValueError("cool_down must be zero or positive")
        if not 0.0 < self.sensitivity < 1.0:
            logger.warning("sensitivity %.3f is outside (0, 1); blinks will rarely or always fire", self.sensitivity)


class BlinkStateMachine:
    """Classifies left/right closure confidences into debounced blink events."""

    def __init__(self, config: BlinkConfig) -> None:
        self.config = config
        self._classifier = ThresholdClassifier(config.sensitivity, clamp_input=config.clamp_confidence)
        self._gate = CooldownGate(config.cool_down)
        self._last_event_ts: float | None = None

    @property
    def last_event_ts(self) -> float | None:
        return self._last_event_ts

    def armed(self, now: float) -> bool:
        return self._gate.is_open(now, self._last_event_ts)

    def update(self, left_confidence: float, right_confidence: float, now: float) -> EyeBlink | None:
        left_closed = self._classifier.is_closed(left_confidence)
        right_closed = self._classifier.is_closed(right_confidence)

        if not math.isfinite(now):
            logger.warning("Ignoring sample with non-finite timestamp %r", now)
            return None
        if not self._gate.is_open(now, self._last_event_ts):
            if self._last_event_ts is not None and now < self._last_event_ts:
                logger.warning("Ignoring out-of-order sample at %.3f (last event at %.3f)", now, self._last_event_ts)
            return None

        if left_closed and right_closed:
            # Dropped both-eye closures leave the cooldown unarmed.
            if not self.config.detect_both_eyes:
                return None
            return self._emit(EyeBlink.BOTH, now)
        if left_closed:
            return self._emit(EyeBlink.LEFT, now)
        if right_closed:
            return self._emit(EyeBlink.RIGHT, now)
        return None

    def _emit(self, side: EyeBlink, now: float) -> EyeBlink:
        self._last_event_ts = now
        logger.debug("Blink %s at %.3f", side.value, now)
        return side


class EyeBlinkDetector:
    """
    Feeds samples into a BlinkStateMachine and notifies a listener.

    The listener is held through a weak reference; whoever registers it keeps
    it alive. Notification happens synchronously inside `process`.
    """

    def __init__(
        self,
        config: BlinkConfig,
        listener: BlinkListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._machine = BlinkStateMachine(config)
        self._clock = clock
        self._listener_ref: weakref.ReferenceType[BlinkListener] | None = None
        self.listener = listener

    @property
    def state_machine(self) -> BlinkStateMachine:
        return self._machine

    @property
    def listener(self) -> BlinkListener | None:
        if self._listener_ref is None:
            return None
        return self._listener_ref()

    @listener.setter
    def listener(self, listener: BlinkListener | None) -> None:
        self._listener_ref = weakref.ref(listener) if listener is not None else None

    def process(self, left_confidence: float, right_confidence: float, now: float | None = None) -> EyeBlink | None:
        if now is None:
            now = self._clock()
        side = self._machine.update(left_confidence, right_confidence, now)
        if side is not None:
            listener = self.listener
            if listener is not None:
                listener.blink_detected(side)
        return side

    def process_frame(self, frame: BlinkFrame) -> EyeBlink | None:
        face = first_face(frame)
        if face is None:
            return None
        left, right = user_perspective(face, frame.mirrored)
        return self.process(left, right, frame.ts)
