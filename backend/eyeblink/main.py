from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import asdict
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import get_settings
from .detector import EyeBlink, EyeBlinkDetector
from .frames import FrameFormatError, parse_frame
from .stream import EventHub, ZmqFrameSubscriber

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("eyeblink")

app = FastAPI(title="Eye Blink Event Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

event_hub = EventHub(history_size=settings.event_history)
detector = EyeBlinkDetector(settings.blink_config())


class FrameResult(BaseModel):
    event: EyeBlink | None = None


async def handle_frame(payload: Any) -> EyeBlink | None:
    # Frames from the relay and from POST /frames share this path; both run on
    # the event loop, so detector updates never overlap.
    frame = parse_frame(payload, default_mirrored=settings.camera_mirrored)
    side = detector.process_frame(frame)
    if side is not None:
        await event_hub.broadcast({"event": "blink", "side": side.value, "ts": frame.ts})
    return side


frame_subscriber = ZmqFrameSubscriber(settings.zmq_endpoint, handle_frame)


@app.on_event("startup")
async def _startup() -> None:
    logger.info("Starting blink backend (relay %s)", settings.zmq_endpoint)
    await frame_subscriber.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    logger.info("Stopping blink backend")
    await frame_subscriber.stop()


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    return {
        "status": "ok",
        "subscriber_running": frame_subscriber.running,
        "last_event_ts": detector.state_machine.last_event_ts,
        "connected_clients": len(event_hub.clients),
        "frames_received": frame_subscriber.frames_received,
        "frames_dropped": frame_subscriber.frames_dropped,
        "detector": asdict(detector.state_machine.config),
    }


@app.get("/events/latest")
async def latest_event() -> JSONResponse:
    if not event_hub.latest_event:
        raise HTTPException(status_code=404, detail="No blink events yet")
    return JSONResponse(event_hub.latest_event)


@app.get("/events/history")
async def event_history(limit: int | None = None) -> list[dict[str, Any]]:
    return event_hub.recent(limit)


@app.post("/frames", response_model=FrameResult)
async def post_frame(payload: Any = Body(...)) -> FrameResult:
    # Same validation as relay frames: parse_frame is the only schema.
    try:
        side = await handle_frame(payload)
    except FrameFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return FrameResult(event=side)


@app.websocket("/ws/events")
async def websocket_events(websocket: WebSocket) -> None:
    await event_hub.register(websocket)
    ping_task = asyncio.create_task(_ping_client(websocket))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        ping_task.cancel()
        await event_hub.unregister(websocket)


async def _ping_client(websocket: WebSocket) -> None:
    try:
        while True:
            await asyncio.sleep(30)
            await websocket.send_json({"event": "ping"})
    except Exception:
        pass


def run() -> None:
    parser = argparse.ArgumentParser(description="Serve debounced eye blink events over HTTP/WebSocket")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default=settings.log_level.lower())
    args = parser.parse_args()
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    run()
