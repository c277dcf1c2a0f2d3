"""
Wire format for capture frames coming out of the relay.

Each frame is a JSON object:

    {"event": "frame", "ts": 12.5, "mirrored": true,
     "faces": [{"eye_blink_left": 0.1, "eye_blink_right": 0.8}]}

Eye values use the sensor's axis (ARKit-style blend shapes). A front-facing
camera sees the user mirrored, so its "left" value belongs to the user's right
eye. `user_perspective` undoes that before the values reach the detector.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


class FrameFormatError(ValueError):
    """Payload is not a well-formed capture frame."""


@dataclass
class FaceSample:
    eye_blink_left: float = 0.0
    eye_blink_right: float = 0.0


@dataclass
class BlinkFrame:
    ts: float
    faces: list[FaceSample] = field(default_factory=list)
    mirrored: bool = True


def _number(raw: Any, key: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise FrameFormatError(f"'{key}' must be a number, got {type(raw).__name__}")
    try:
        return float(raw)
    except OverflowError as exc:
        raise FrameFormatError(f"'{key}' is too large") from exc


def _eye_value(face: dict[str, Any], key: str) -> float:
    raw = face.get(key)
    if raw is None:
        return 0.0
    return _number(raw, key)


def parse_frame(payload: Any, default_mirrored: bool = True) -> BlinkFrame:
    if not isinstance(payload, dict):
        raise FrameFormatError(f"frame must be an object, got {type(payload).__name__}")
    event = payload.get("event", "frame")
    if event != "frame":
        raise FrameFormatError(f"unexpected event type '{event}'")

    if "ts" not in payload:
        raise FrameFormatError("frame is missing 'ts'")
    ts = _number(payload["ts"], "ts")
    if not math.isfinite(ts):
        raise FrameFormatError(f"'ts' must be finite, got {ts}")

    faces_raw = payload.get("faces", [])
    if not isinstance(faces_raw, list):
        raise FrameFormatError("'faces' must be a list")
    faces: list[FaceSample] = []
    for face in faces_raw:
        if not isinstance(face, dict):
            raise FrameFormatError("each face must be an object")
        faces.append(
            FaceSample(
                eye_blink_left=_eye_value(face, "eye_blink_left"),
                eye_blink_right=_eye_value(face, "eye_blink_right"),
            )
        )

    mirrored = payload.get("mirrored")
    if mirrored is None:
        mirrored = default_mirrored
    return BlinkFrame(ts=ts, faces=faces, mirrored=bool(mirrored))


def first_face(frame: BlinkFrame) -> FaceSample | None:
    return frame.faces[0] if frame.faces else None


def user_perspective(face: FaceSample, mirrored: bool) -> tuple[float, float]:
    """Return (left, right) closure confidences from the user's point of view."""
    if mirrored:
        return face.eye_blink_right, face.eye_blink_left
    return face.eye_blink_left, face.eye_blink_right
