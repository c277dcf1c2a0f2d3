import asyncio
import json

from eyeblink.frames import parse_frame
from eyeblink.stream import EventHub, ZmqFrameSubscriber


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


def test_hub_register_greets_client():
    async def scenario():
        hub = EventHub()
        ws = FakeWebSocket()
        await hub.register(ws)
        return hub, ws

    hub, ws = asyncio.run(scenario())
    assert ws.accepted
    assert ws.sent == [{"event": "ready", "clients": 1}]
    assert ws in hub.clients


def test_hub_broadcast_drops_dead_clients():
    async def scenario():
        hub = EventHub(history_size=2)
        good, bad = FakeWebSocket(), FakeWebSocket()
        await hub.register(good)
        await hub.register(bad)
        bad.fail = True
        for side in ("left", "right", "both"):
            await hub.broadcast({"event": "blink", "side": side})
        return hub, good, bad

    hub, good, bad = asyncio.run(scenario())
    assert hub.clients == {good}
    assert [p["side"] for p in good.sent if p["event"] == "blink"] == ["left", "right", "both"]
    assert hub.latest_event == {"event": "blink", "side": "both"}
    assert [p["side"] for p in hub.recent()] == ["right", "both"]
    assert [p["side"] for p in hub.recent(1)] == ["both"]
    assert hub.recent(0) == []


def test_subscriber_dispatch_counts_frames():
    received = []

    async def handler(payload):
        received.append(parse_frame(payload))

    async def scenario():
        subscriber = ZmqFrameSubscriber("tcp://127.0.0.1:1", handler)
        await subscriber.dispatch(json.dumps({"event": "frame", "ts": 1.0, "faces": []}).encode())
        await subscriber.dispatch(b"not json")
        await subscriber.dispatch(json.dumps({"event": "frame", "ts": "late"}).encode())
        return subscriber

    subscriber = asyncio.run(scenario())
    assert len(received) == 1
    assert subscriber.frames_received == 2
    assert subscriber.frames_dropped == 2
    assert not subscriber.running


def test_subscriber_drops_oversized_numbers():
    received = []

    async def handler(payload):
        received.append(parse_frame(payload))

    async def scenario():
        subscriber = ZmqFrameSubscriber("tcp://127.0.0.1:1", handler)
        await subscriber.dispatch(b'{"event": "frame", "ts": 1' + b"0" * 400 + b"}")
        return subscriber

    subscriber = asyncio.run(scenario())
    assert received == []
    assert subscriber.frames_dropped == 1


class ScriptedSocket:
    def __init__(self, frames, stop_event):
        self.frames = list(frames)
        self.stop_event = stop_event

    async def recv(self):
        frame = self.frames.pop(0)
        if not self.frames:
            self.stop_event.set()
        return frame


def test_subscriber_loop_survives_handler_failure():
    seen = []

    async def handler(payload):
        seen.append(payload["ts"])
        if payload["ts"] == 1.0:
            raise RuntimeError("handler bug")

    async def scenario():
        subscriber = ZmqFrameSubscriber("tcp://127.0.0.1:1", handler)
        frames = [json.dumps({"event": "frame", "ts": ts}).encode() for ts in (1.0, 2.0)]
        subscriber._socket = ScriptedSocket(frames, subscriber._stop_event)
        await subscriber._loop()
        return subscriber

    subscriber = asyncio.run(scenario())
    assert seen == [1.0, 2.0]
    assert subscriber.frames_received == 2
    assert subscriber.frames_dropped == 1
