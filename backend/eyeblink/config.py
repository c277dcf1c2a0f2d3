from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from .detector import BlinkConfig


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    zmq_endpoint: str = os.getenv("BLINK_ZMQ_ENDPOINT", "tcp://127.0.0.1:5556")
    cors_origins: list[str] = field(
        default_factory=lambda: os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080",
        ).split(",")
    )
    event_history: int = int(os.getenv("EVENT_HISTORY", "256"))
    blink_sensitivity: float = float(os.getenv("BLINK_SENSITIVITY", "0.6"))
    blink_cool_down: float = float(os.getenv("BLINK_COOL_DOWN", "1.0"))
    blink_detect_both: bool = _env_flag("BLINK_DETECT_BOTH", "false")
    blink_clamp_confidence: bool = _env_flag("BLINK_CLAMP_CONFIDENCE", "true")
    camera_mirrored: bool = _env_flag("CAMERA_MIRRORED", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def blink_config(self) -> BlinkConfig:
        return BlinkConfig(
            detect_both_eyes=self.blink_detect_both,
            sensitivity=self.blink_sensitivity,
            cool_down=self.blink_cool_down,
            clamp_confidence=self.blink_clamp_confidence,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
