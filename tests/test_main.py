import pytest
from fastapi.testclient import TestClient

from eyeblink import main
from eyeblink.detector import BlinkConfig, EyeBlinkDetector
from eyeblink.stream import EventHub


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "detector", EyeBlinkDetector(BlinkConfig(detect_both_eyes=False, cool_down=1.0)))
    monkeypatch.setattr(main, "event_hub", EventHub(history_size=8))
    monkeypatch.setattr(main.settings, "camera_mirrored", False)
    # Without a context manager the startup hook (and the ZMQ subscriber) never runs.
    return TestClient(main.app)


def frame(ts, left, right, **extra):
    return {"ts": ts, "faces": [{"eye_blink_left": left, "eye_blink_right": right}], **extra}


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["last_event_ts"] is None
    assert body["detector"]["cool_down"] == 1.0
    assert body["detector"]["detect_both_eyes"] is False


def test_latest_event_404_before_any_blink(client):
    assert client.get("/events/latest").status_code == 404


def test_post_frames_emits_debounced_events(client):
    assert client.post("/frames", json=frame(0.0, 0.9, 0.1)).json() == {"event": "left"}
    assert client.post("/frames", json=frame(0.5, 0.1, 0.9)).json() == {"event": None}
    assert client.post("/frames", json=frame(1.0, 0.1, 0.9)).json() == {"event": "right"}

    latest = client.get("/events/latest").json()
    assert latest == {"event": "blink", "side": "right", "ts": 1.0}
    history = client.get("/events/history").json()
    assert [item["side"] for item in history] == ["left", "right"]
    assert len(client.get("/events/history", params={"limit": 1}).json()) == 1
    assert client.get("/healthz").json()["last_event_ts"] == 1.0


def test_post_frames_mirrored_override(client):
    assert client.post("/frames", json=frame(0.0, 0.9, 0.1, mirrored=True)).json() == {"event": "right"}


def test_post_frames_both_eyes_dropped(client):
    assert client.post("/frames", json=frame(0.0, 0.9, 0.9)).json() == {"event": None}
    assert client.post("/frames", json=frame(0.0, 0.9, 0.1)).json() == {"event": "left"}


def test_post_frames_without_faces(client):
    assert client.post("/frames", json={"ts": 2.0}).json() == {"event": None}


def test_post_frames_rejects_malformed_frames(client):
    for payload in ({"faces": []}, {"ts": "1.5"}, {"ts": 1.0, "faces": [{"eye_blink_left": "0.9"}]}, [1, 2]):
        response = client.post("/frames", json=payload)
        assert response.status_code == 400, payload


def test_post_frames_requires_json_body(client):
    assert client.post("/frames").status_code == 422


def test_post_frames_nan_timestamp_does_not_wedge_detector(client):
    body = '{"ts": NaN, "faces": [{"eye_blink_left": 0.9, "eye_blink_right": 0.1}]}'
    response = client.post("/frames", content=body, headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert client.get("/healthz").json()["last_event_ts"] is None
    assert client.post("/frames", json=frame(10.0, 0.9, 0.1)).json() == {"event": "left"}
