import pytest
from fastapi.testclient import TestClient

from rgb_node.config import Settings
from rgb_node.device import HardwareError, MemorySink
from rgb_node.webapp import create_app, lenient_int


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def client(sink):
    with TestClient(create_app(Settings(), sink)) as c:
        yield c


def test_startup_configures_pins_and_writes_default(client, sink):
    assert set(sink.config) == {17, 22, 24}
    assert sink.config[17] == (255, 800)
    assert sink.frames() == [(0, 0, 0)]


def test_get_state_default(client):
    res = client.get("/api/state")
    assert res.status_code == 200
    assert res.json() == {"ok": True, "state": {"r": 0, "g": 0, "b": 0, "brightness": 100, "effect": "none"}}


def test_color_partial_and_clamped(client, sink):
    client.post("/api/color", json={"r": 10, "g": 20, "b": 30})
    res = client.post("/api/color", json={"r": 999})
    assert res.json()["state"] == {"r": 255, "g": 20, "b": 30, "brightness": 100, "effect": "none"}
    assert sink.frames()[-1] == (255, 20, 30)


def test_invalid_numbers_keep_previous(client):
    client.post("/api/color", json={"r": 10, "g": 20, "b": 30})
    res = client.post("/api/color", json={"r": "abc", "g": None, "b": "40"})
    assert res.status_code == 200
    s = res.json()["state"]
    assert (s["r"], s["g"], s["b"]) == (10, 20, 40)


def test_missing_body_is_noop_update(client):
    client.post("/api/color", json={"r": 1, "g": 2, "b": 3})
    res = client.post("/api/color")
    assert res.status_code == 200
    assert res.json()["state"]["r"] == 1


def test_brightness(client, sink):
    client.post("/api/color", json={"r": 200, "g": 100, "b": 50})
    res = client.post("/api/brightness", json={"brightness": 150})
    assert res.json()["state"]["brightness"] == 100
    res = client.post("/api/brightness", json={"brightness": 50})
    assert sink.frames()[-1] == (100, 50, 25)
    res = client.post("/api/brightness", json={"brightness": "bright"})
    assert res.json()["state"]["brightness"] == 50


def test_effect_strobe_clamps_speed(client):
    res = client.post("/api/effect", json={"name": "strobe", "speed": 5})
    s = res.json()["state"]
    assert s["effect"] == "strobe"
    assert s["speed"] == 50
    res = client.post("/api/effect/stop")
    assert res.json()["state"]["effect"] == "none"


def test_effect_breathe_clamps_period(client):
    res = client.post("/api/effect", json={"name": "breathe", "period": 50_000})
    assert res.json()["state"]["period"] == 10000


def test_legacy_effect_field(client):
    res = client.post("/api/effect", json={"effect": "pulse"})
    assert res.json()["state"]["effect"] == "breathe"


def test_unknown_effect_means_none(client, sink):
    client.post("/api/color", json={"r": 9, "g": 9, "b": 9})
    client.post("/api/effect", json={"name": "strobe"})
    res = client.post("/api/effect", json={"name": "disco"})
    assert res.json()["state"]["effect"] == "none"
    assert sink.frames()[-1] == (9, 9, 9)


def test_color_cancels_effect(client):
    client.post("/api/effect", json={"name": "breathe", "period": 1000})
    res = client.post("/api/color", json={"g": 77})
    assert res.json()["state"]["effect"] == "none"
    assert client.get("/api/state").json()["state"]["g"] == 77


def test_off(client, sink):
    client.post("/api/color", json={"r": 9, "g": 9, "b": 9})
    res = client.post("/api/off")
    assert res.json()["state"]["r"] == 0
    assert sink.frames()[-1] == (0, 0, 0)


def test_hardware_error_is_503(client, sink):
    sink.fail_after = len(sink.writes)
    res = client.post("/api/color", json={"r": 1})
    assert res.status_code == 503
    assert res.json()["ok"] is False


def test_state_after_503_matches_requested_color(client, sink):
    client.post("/api/color", json={"r": 5, "g": 5, "b": 5})
    sink.fail_after = len(sink.writes) + 1
    assert client.post("/api/color", json={"r": 200, "g": 100, "b": 50}).status_code == 503
    s = client.get("/api/state").json()["state"]
    assert (s["r"], s["g"], s["b"], s["effect"]) == (200, 100, 50, "none")


def test_startup_failure_still_closes_sink():
    sink = MemorySink(fail_after=0)
    with pytest.raises(HardwareError):
        with TestClient(create_app(Settings(), sink)):
            pass
    assert sink.closed


def test_index_page(client):
    res = client.get("/")
    assert res.status_code == 200
    assert "EventSource('/api/events')" in res.text


def test_shutdown_closes_sink(sink):
    with TestClient(create_app(Settings(), sink)):
        pass
    assert sink.closed


@pytest.mark.parametrize("raw, expected", [
    (5, 5), ("12", 12), (" 7 ", 7), (3.6, 4), ("x", None), ("", None),
    (None, None), (True, None), (float("nan"), None), ([1], None),
])
def test_lenient_int(raw, expected):
    assert lenient_int(raw) == expected
