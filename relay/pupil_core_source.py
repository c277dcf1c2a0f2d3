from __future__ import annotations

import asyncio
import threading
import time
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import msgpack  # type: ignore
import zmq
import zmq.asyncio  # type: ignore

from eyeblink.blink_utils import clamp

if TYPE_CHECKING:  # pragma: no cover - typing helper only
    from blink_relay import RelayConfig

# Pupil Core numbers its eye cameras from the wearer's side: eye0 is the right eye.
RIGHT_EYE_ID = 0
LEFT_EYE_ID = 1


class ClosureEstimator:
    """Exponentially smoothed pupil confidence mapped onto a closure confidence.

    A pupil the detector cannot see (confidence near 0) reads as a closed eye.
    """

    def __init__(self, ema_alpha: float = 0.3, initial_confidence: float = 1.0) -> None:
        self.ema_alpha = max(0.0, min(1.0, ema_alpha))
        self.filtered_confidence = initial_confidence

    def update(self, pupil_confidence: float) -> float:
        weight = self.ema_alpha
        if weight == 0.0:
            self.filtered_confidence = pupil_confidence
        else:
            self.filtered_confidence = (1.0 - weight) * self.filtered_confidence + weight * pupil_confidence
        return clamp(1.0 - self.filtered_confidence)


class PupilFrameAssembler:
    """Pairs per-eye pupil datums into closure frames.

    A frame is produced for each right-eye datum, using the latest left-eye value.
    """

    def __init__(self, ema_alpha: float = 0.3) -> None:
        self.estimators = {
            LEFT_EYE_ID: ClosureEstimator(ema_alpha),
            RIGHT_EYE_ID: ClosureEstimator(ema_alpha),
        }
        self.closure = {LEFT_EYE_ID: 0.0, RIGHT_EYE_ID: 0.0}

    def feed(self, datum: dict[str, Any]) -> dict[str, Any] | None:
        eye_id = datum.get("id")
        if eye_id not in self.estimators:
            return None
        self.closure[eye_id] = self.estimators[eye_id].update(float(datum.get("confidence", 0.0)))
        if eye_id != RIGHT_EYE_ID:
            return None
        ts_raw = datum.get("timestamp")
        ts = float(ts_raw) if ts_raw is not None else time.monotonic()
        face = {"eye_blink_left": self.closure[LEFT_EYE_ID], "eye_blink_right": self.closure[RIGHT_EYE_ID]}
        # Eye cameras look at each eye directly, so nothing is mirrored.
        return {"event": "frame", "ts": ts, "mirrored": False, "faces": [face]}


def _make_publishers(publisher: zmq.asyncio.Socket):
    loop = asyncio.get_running_loop()

    async def _send(payload: dict[str, Any]) -> None:
        await publisher.send_json(payload)

    def publish_async(payload: dict[str, Any]) -> None:
        asyncio.run_coroutine_threadsafe(_send(payload), loop)

    return loop, publish_async


async def pupil_core_source(publisher: zmq.asyncio.Socket, cfg: "RelayConfig") -> None:
    """Subscribe to a Pupil Core runtime (via Pupil Remote) and relay eye closure frames."""

    loop, publish_async = _make_publishers(publisher)

    remote_address = f"tcp://{cfg.pupil_host}:{cfg.pupil_remote_port}"
    ctx = zmq.Context.instance()
    request_socket = ctx.socket(zmq.REQ)
    request_socket.connect(remote_address)
    print(f"[relay] Connecting to Pupil Remote at {remote_address}", flush=True)

    try:
        request_socket.send_string("SUB_PORT")
        sub_port = request_socket.recv_string()
        print(f"[relay] Received Pupil SUB_PORT={sub_port}", flush=True)
    except Exception as exc:  # pragma: no cover - requires hardware/runtime
        request_socket.close(0)
        raise RuntimeError(
            "Unable to reach the Pupil Remote plugin. Ensure Pupil Capture/Core is running "
            "with Remote enabled and that the host/port are correct."
        ) from exc

    sub_socket = ctx.socket(zmq.SUB)
    sub_socket.connect(f"tcp://{cfg.pupil_host}:{sub_port}")
    sub_socket.setsockopt_string(zmq.SUBSCRIBE, cfg.pupil_topic)
    print(
        f"[relay] Subscribed to topic prefix '{cfg.pupil_topic}' on tcp://{cfg.pupil_host}:{sub_port}",
        flush=True,
    )

    stop_event = threading.Event()
    done_fut: asyncio.Future[None] = loop.create_future()
    assembler = PupilFrameAssembler(cfg.pupil_confidence_ema_alpha)
    last_log = time.monotonic()
    frames_forwarded = 0

    def close_sockets() -> None:
        with suppress(Exception):
            sub_socket.close(0)
        with suppress(Exception):
            request_socket.close(0)

    def run() -> None:
        nonlocal last_log, frames_forwarded
        try:
            while not stop_event.is_set():
                try:
                    frames = sub_socket.recv_multipart(flags=zmq.NOBLOCK)
                except zmq.Again:
                    time.sleep(0.005)
                    continue
                if len(frames) < 2:
                    continue
                datum = msgpack.loads(frames[1], raw=False)
                if not isinstance(datum, dict):
                    print(f"[relay] Skipping unexpected payload type {type(datum).__name__}", flush=True)
                    continue
                frame = assembler.feed(datum)
                if frame is None:
                    continue
                publish_async(frame)
                frames_forwarded += 1
                now = time.monotonic()
                if now - last_log >= 5:
                    print(
                        f"[relay] Forwarded {frames_forwarded} frames "
                        f"(closure left {assembler.closure[LEFT_EYE_ID]:.2f}, right {assembler.closure[RIGHT_EYE_ID]:.2f})",
                        flush=True,
                    )
                    last_log = now
                    frames_forwarded = 0
        except Exception as exc:  # pragma: no cover - requires hardware/runtime
            loop.call_soon_threadsafe(done_fut.set_exception, exc)
        else:
            loop.call_soon_threadsafe(done_fut.set_result, None)
        finally:
            stop_event.set()
            close_sockets()

    thread = threading.Thread(target=run, name="pupil-core-stream", daemon=True)
    thread.start()

    try:
        await done_fut
    except asyncio.CancelledError:
        stop_event.set()
        thread.join(timeout=5)
        raise
