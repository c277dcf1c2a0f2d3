#!/usr/bin/env python3
"""Quick diagnostic: subscribe to the blink relay and print classified blink events."""
import argparse
import json
import sys
import time

import zmq

from eyeblink.detector import BlinkConfig, EyeBlink, EyeBlinkDetector
from eyeblink.frames import FrameFormatError, parse_frame


class ConsoleListener:
    def __init__(self) -> None:
        self.count = 0

    def blink_detected(self, side: EyeBlink) -> None:
        self.count += 1
        print(f"[diag] blink #{self.count}: {side.value}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--endpoint", default="tcp://127.0.0.1:5556", help="Relay PUB endpoint")
    parser.add_argument("--sensitivity", type=float, default=0.6, help="Closure threshold in [0, 1]")
    parser.add_argument("--cool-down", type=float, default=1.0, help="Seconds between reported blinks")
    parser.add_argument("--both", action="store_true", help="Report blinks with both eyes closed")
    parser.add_argument("--duration", type=float, default=15.0, help="Seconds to listen before exiting")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    listener = ConsoleListener()
    detector = EyeBlinkDetector(
        BlinkConfig(detect_both_eyes=args.both, sensitivity=args.sensitivity, cool_down=args.cool_down),
        listener=listener,
    )

    ctx = zmq.Context.instance()
    sub = ctx.socket(zmq.SUB)
    sub.connect(args.endpoint)
    sub.setsockopt(zmq.SUBSCRIBE, b"")
    print(f"[diag] Listening on {args.endpoint}")

    start = time.time()
    frames = 0
    try:
        while time.time() - start < args.duration:
            try:
                raw = sub.recv(flags=zmq.NOBLOCK)
            except zmq.Again:
                time.sleep(0.01)
                continue
            try:
                frame = parse_frame(json.loads(raw.decode("utf-8")))
            except (FrameFormatError, json.JSONDecodeError, UnicodeDecodeError) as exc:
                print(f"[diag] Skipping frame: {exc}")
                continue
            frames += 1
            detector.process_frame(frame)
    except KeyboardInterrupt:
        pass
    finally:
        sub.close(0)

    if frames == 0:
        print("[diag] No frames received. Verify the relay is running and the endpoint is correct.")
        sys.exit(1)
    print(f"[diag] {frames} frames, {listener.count} blinks in {time.time() - start:.1f}s")


if __name__ == "__main__":
    main()
