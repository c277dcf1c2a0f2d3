from .blink_utils import CooldownGate, ThresholdClassifier, clamp
from .detector import BlinkConfig, BlinkListener, BlinkStateMachine, EyeBlink, EyeBlinkDetector

__all__ = [
    "BlinkConfig",
    "BlinkListener",
    "BlinkStateMachine",
    "CooldownGate",
    "EyeBlink",
    "EyeBlinkDetector",
    "ThresholdClassifier",
    "clamp",
]
