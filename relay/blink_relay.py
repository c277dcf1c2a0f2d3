"""Relay per-frame eye closure confidences into the blink backend via ZeroMQ."""
from __future__ import annotations

import argparse
import asyncio
import os
import random
import time
from dataclasses import dataclass
from typing import Any

import zmq
import zmq.asyncio  # type: ignore

from pupil_core_source import pupil_core_source

WINK_CYCLE = ("left", "right", "both")


@dataclass
class RelayConfig:
    endpoint: str = "tcp://*:5556"
    mode: str = "simulate"
    hz: float = 60.0
    wink_interval: float = 2.0
    wink_duration: float = 0.15
    mirrored: bool = True
    pupil_host: str = "127.0.0.1"
    pupil_remote_port: int = 50020
    pupil_topic: str = "pupil."
    pupil_confidence_ema_alpha: float = 0.3


def synthetic_frame(ts: float, closed: str | None, mirrored: bool) -> dict[str, Any]:
    """Build a frame whose user-side eyes match `closed` ("left", "right", "both" or None)."""
    user_left = 0.85 + 0.1 * random.random() if closed in ("left", "both") else 0.1 * random.random()
    user_right = 0.85 + 0.1 * random.random() if closed in ("right", "both") else 0.1 * random.random()
    # Front cameras report the user's left eye on the sensor's right side.
    if mirrored:
        face = {"eye_blink_left": user_right, "eye_blink_right": user_left}
    else:
        face = {"eye_blink_left": user_left, "eye_blink_right": user_right}
    return {"event": "frame", "ts": ts, "mirrored": mirrored, "faces": [face]}


async def simulated_source(publisher: zmq.asyncio.Socket, cfg: RelayConfig) -> None:
    period = 1.0 / cfg.hz
    next_wink = time.monotonic() + cfg.wink_interval
    wink_until = 0.0
    wink_index = 0
    closed: str | None = None
    while True:
        now = time.monotonic()
        if now >= next_wink:
            closed = WINK_CYCLE[wink_index % len(WINK_CYCLE)]
            wink_index += 1
            wink_until = now + cfg.wink_duration
            next_wink = now + cfg.wink_interval
            print(f"[relay] Simulating {closed} wink", flush=True)
        elif now >= wink_until:
            closed = None
        await publisher.send_json(synthetic_frame(now, closed, cfg.mirrored))
        await asyncio.sleep(period)


async def main(cfg: RelayConfig) -> None:
    ctx = zmq.asyncio.Context.instance()
    socket = ctx.socket(zmq.PUB)
    socket.bind(cfg.endpoint)
    print(f"Relay publishing on {cfg.endpoint} in {cfg.mode} mode", flush=True)
    try:
        if cfg.mode == "simulate":
            await simulated_source(socket, cfg)
        else:
            await pupil_core_source(socket, cfg)
    finally:
        socket.close(0)


def parse_args() -> RelayConfig:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--endpoint", default=os.environ.get("BLINK_RELAY_ENDPOINT", "tcp://*:5556"), help="ZeroMQ PUB endpoint")
    parser.add_argument("--mode", choices=["simulate", "pupil"], default="simulate")
    parser.add_argument("--hz", type=float, default=60.0, help="Frames per second in simulate mode")
    parser.add_argument("--wink-interval", type=float, default=2.0, help="Seconds between synthetic winks")
    parser.add_argument("--wink-duration", type=float, default=0.15, help="Seconds a synthetic wink keeps the eye closed")
    parser.add_argument(
        "--unmirrored",
        action="store_true",
        help="Publish simulated frames in the user's own axis instead of a front camera's mirrored axis",
    )
    parser.add_argument("--pupil-host", default=os.environ.get("PUPIL_REMOTE_HOST", "127.0.0.1"), help="Pupil Remote host")
    parser.add_argument("--pupil-port", type=int, default=int(os.environ.get("PUPIL_REMOTE_PORT", "50020")), help="Pupil Remote command port")
    parser.add_argument("--pupil-topic", default=os.environ.get("PUPIL_TOPIC", "pupil."), help="ZMQ topic prefix for per-eye pupil datums")
    parser.add_argument(
        "--pupil-confidence-ema",
        type=float,
        default=0.3,
        help="EMA alpha applied to Pupil confidence values",
    )
    args = parser.parse_args()
    return RelayConfig(
        endpoint=args.endpoint,
        mode=args.mode,
        hz=args.hz,
        wink_interval=args.wink_interval,
        wink_duration=args.wink_duration,
        mirrored=not args.unmirrored,
        pupil_host=args.pupil_host,
        pupil_remote_port=args.pupil_port,
        pupil_topic=args.pupil_topic,
        pupil_confidence_ema_alpha=args.pupil_confidence_ema,
    )


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
