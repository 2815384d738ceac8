from __future__ import annotations

import json

from src.livequeue.push.channel import PushChannel, build_socket_url


class _WS:
    def __init__(self):
        self.sent = []

    def send(self, frame):
        self.sent.append(frame)


def _channel(**kw):
    states = []
    kw.setdefault("branch_id", "b1")
    ch = PushChannel(url="wss://x/api/socket/", token="tok", on_state=states.append, **kw)
    return ch, states


def test_build_socket_url():
    assert build_socket_url("https://dev.feasto.co.uk") == "wss://dev.feasto.co.uk/api/socket/?EIO=4&transport=websocket"
    assert build_socket_url("http://localhost:3000/", "socket") == "ws://localhost:3000/socket/?EIO=4&transport=websocket"


def test_handshake_ping_and_join():
    ch, states = _channel()
    ws = _WS()

    ch._on_message(ws, '0{"sid":"e1","pingInterval":25000}')
    assert ws.sent[-1][:2] == "40"
    assert json.loads(ws.sent[-1][2:]) == {"token": "tok"}

    ch._on_message(ws, "2")
    assert ws.sent[-1] == "3"

    ch._on_message(ws, '40{"sid":"s1"}')
    assert ch.is_connected
    assert states == [True]
    assert ws.sent[-1][:2] == "42"
    assert json.loads(ws.sent[-1][2:]) == ["join_restaurant", {"token": "tok", "branchId": "b1"}]


def test_join_without_branch():
    ch, _ = _channel(branch_id=None)
    ws = _WS()
    ch._on_message(ws, "40")
    assert json.loads(ws.sent[-1][2:]) == ["join_restaurant", {"token": "tok"}]


def test_order_events_reach_every_handler():
    ch, _ = _channel()
    got = []

    def bad(_p):
        raise RuntimeError("handler bug")

    def good(p):
        got.append(p)

    ch.on(bad)
    ch.on(good)
    ch._on_message(_WS(), '42["order",{"event":"order_created","id":"o1"}]')
    assert got == [{"event": "order_created", "id": "o1"}]

    ch._on_message(_WS(), '42["chat",{"x":1}]')
    ch._on_message(_WS(), "42not json")
    assert len(got) == 1

    ch.off(good)
    ch._on_message(_WS(), '42["order","order_created"]')
    assert len(got) == 1


def test_disconnect_frames():
    ch, states = _channel()
    ws = _WS()
    ch._on_message(ws, "40")
    ch._on_message(ws, "41")
    assert not ch.is_connected
    assert states == [True, False]

    ch._on_message(ws, "40")
    ch._on_message(ws, "1")
    assert states == [True, False, True, False]


def test_connect_error_does_not_mark_connected():
    ch, states = _channel()
    ch._on_message(_WS(), '44{"message":"invalid token"}')
    assert states == []
    assert not ch.is_connected


class _FakeApp:
    made = []

    def __init__(self, url, on_message=None, on_error=None, on_close=None):
        self.url = url
        self.on_message = on_message
        self.on_close = on_close
        self.connect = len(_FakeApp.made) in _FakeApp.connect_on
        _FakeApp.made.append(self)

    def run_forever(self, **kw):
        self.run_kw = kw
        if self.connect:
            self.on_message(self, "40")
        self.on_close(self, None, None)

    def send(self, frame):
        pass

    def close(self):
        pass


def _run(attempts, connect_on=()):
    _FakeApp.made = []
    _FakeApp.connect_on = set(connect_on)
    states = []
    ch = PushChannel(
        url="wss://x",
        token="tok",
        reconnect_attempts=attempts,
        reconnect_delay=0,
        on_state=states.append,
        ws_factory=_FakeApp,
    )
    ch.run()
    return len(_FakeApp.made), states


def test_reconnect_gives_up_after_fixed_attempts():
    made, states = _run(3)
    assert made == 3
    assert states == []


def test_successful_connect_resets_attempt_counter():
    made, states = _run(2, connect_on={1})
    # fail, connect, fail, fail
    assert made == 4
    assert states == [True, False]


def test_stop_prevents_reconnect():
    ch, _ = _channel(reconnect_delay=0, ws_factory=_FakeApp)
    _FakeApp.made = []
    _FakeApp.connect_on = set()
    ch.stop()
    ch.run()
    assert _FakeApp.made == []


def test_socket_runs_with_keepalive():
    _run(1)
    (app,) = _FakeApp.made
    assert app.run_kw == {"ping_interval": 20.0, "ping_timeout": 10.0}

    _FakeApp.made = []
    ch = PushChannel(url="wss://x", token="tok", reconnect_attempts=1, ping_interval=5, ping_timeout=2, ws_factory=_FakeApp)
    ch.run()
    assert _FakeApp.made[0].run_kw == {"ping_interval": 5.0, "ping_timeout": 2.0}
