# src/livequeue/push/channel.py
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional

import websocket

log = logging.getLogger("livequeue.push")

SOCKET_PATH = "/api/socket"
ORDER_CHANNEL = "order"
JOIN_EVENT = "join_restaurant"

OrderEventHandler = Callable[[Any], None]
StateCallback = Callable[[bool], None]


def build_socket_url(base_url: str, path: str = SOCKET_PATH) -> str:
    """https://host -> wss://host/api/socket/?EIO=4&transport=websocket"""
    base = base_url.rstrip("/")
    if base.startswith("http"):
        base = "ws" + base[len("http"):]
    p = "/" + path.strip("/") + "/"
    return f"{base}{p}?EIO=4&transport=websocket"


class PushChannel(threading.Thread):
    """
    Persistent authenticated connection delivering order-change notifications.

    Socket.IO v4 framing over a plain websocket. Every `order` event is handed
    to all registered handlers; payloads are opaque here.
    Reconnects with a fixed attempt count and fixed delay; the counter resets
    after each successful connect.
    """

    def __init__(
        self,
        *,
        url: str,
        token: str,
        branch_id: Optional[str] = None,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        ping_interval: float = 20.0,
        ping_timeout: float = 10.0,
        on_state: Optional[StateCallback] = None,
        name: str = "PushChannel",
        ws_factory: Callable[..., Any] = websocket.WebSocketApp,
    ):
        super().__init__(daemon=True, name=name)
        self.url = url
        self.token = token
        self.branch_id = branch_id
        self.reconnect_attempts = max(0, int(reconnect_attempts))
        self.reconnect_delay = max(0.0, float(reconnect_delay))
        # websocket-level keepalive; a missed pong closes a half-open socket
        self.ping_interval = float(ping_interval)
        self.ping_timeout = float(ping_timeout)
        self._ws_factory = ws_factory

        self._ws: Any = None
        self._stop_evt = threading.Event()
        self.connected = threading.Event()
        self._on_state_hook = on_state
        self._had_connection = False

        self._handlers: set[OrderEventHandler] = set()
        self._handlers_lock = threading.Lock()

    # ------------------------------------------------------------------
    # handler registration
    # ------------------------------------------------------------------

    def on(self, handler: OrderEventHandler) -> None:
        with self._handlers_lock:
            self._handlers.add(handler)

    def off(self, handler: OrderEventHandler) -> None:
        with self._handlers_lock:
            self._handlers.discard(handler)

    @property
    def is_connected(self) -> bool:
        return self.connected.is_set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def run(self):
        log.info("[%s] connecting → %s", self.name, self.url)

        failures = 0
        while not self._stop_evt.is_set():
            try:
                self._ws = self._ws_factory(
                    self.url,
                    on_message=self._on_message,
                    on_error=self._on_error,
                    on_close=self._on_close,
                )
                self._ws.run_forever(ping_interval=self.ping_interval, ping_timeout=self.ping_timeout)
            except Exception as e:
                log.exception("[%s] WS exception: %s", self.name, e)
            finally:
                had_connection = self._had_connection
                self._had_connection = False
                self._set_state(False)

            if self._stop_evt.is_set():
                break

            failures = 0 if had_connection else failures + 1
            if failures >= self.reconnect_attempts:
                log.error("[%s] giving up after %d failed attempts", self.name, failures)
                break

            log.info("[%s] reconnect in %.1fs (attempt %d/%d)", self.name, self.reconnect_delay, failures + 1, self.reconnect_attempts)
            self._stop_evt.wait(self.reconnect_delay)

        log.info("[%s] stopped", self.name)

    def stop(self):
        self._stop_evt.set()
        self._set_state(False)
        try:
            if self._ws:
                self._ws.close()
        except Exception:
            log.debug("[%s] close failed", self.name, exc_info=True)

    # ------------------------------------------------------------------
    # websocket callbacks
    # ------------------------------------------------------------------

    def _on_error(self, _ws, err):
        # error does not always mean close; liveness is left to _on_close
        log.error("[%s] WS ERROR: %s", self.name, err)

    def _on_close(self, _ws, *_a):
        self._set_state(False)

    def _send(self, ws, frame: str) -> None:
        try:
            ws.send(frame)
        except Exception:
            log.exception("[%s] send failed: %s", self.name, frame[:80])

    def emit(self, event: str, data: Any) -> None:
        if self._ws is not None:
            self._send(self._ws, "42" + json.dumps([event, data]))

    def _on_message(self, ws, msg: str):
        if not isinstance(msg, str) or not msg:
            return

        kind = msg[0]

        # engine.io open -> socket.io namespace connect with auth
        if kind == "0":
            self._send(ws, "40" + json.dumps({"token": self.token}))
            return

        # engine.io ping
        if kind == "2":
            self._send(ws, "3")
            return

        if kind == "1":
            self._set_state(False)
            return

        if kind != "4" or len(msg) < 2:
            return

        sio = msg[1]
        body = msg[2:]

        if sio == "0":
            self._had_connection = True
            self._set_state(True)
            join = {"token": self.token}
            if self.branch_id:
                join["branchId"] = self.branch_id
            self._send(ws, "42" + json.dumps([JOIN_EVENT, join]))
            return

        if sio == "1":
            self._set_state(False)
            return

        if sio == "4":
            log.error("[%s] connect rejected: %s", self.name, body[:300])
            return

        if sio != "2":
            return

        # optional namespace / ack id before the array
        start = body.find("[")
        if start < 0:
            return
        try:
            packet = json.loads(body[start:])
        except ValueError:
            log.warning("[%s] bad event frame: %s", self.name, body[:200])
            return

        if not isinstance(packet, list) or not packet or packet[0] != ORDER_CHANNEL:
            return

        self.dispatch(packet[1] if len(packet) > 1 else None)

    def dispatch(self, payload: Any) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for h in handlers:
            try:
                h(payload)
            except Exception:
                log.exception("[%s] order handler failed: %r", self.name, h)

    def _set_state(self, up: bool) -> None:
        was = self.connected.is_set()
        if up:
            self.connected.set()
        else:
            self.connected.clear()
        if was == up:
            return
        log.info("[%s] %s", self.name, "CONNECTED" if up else "DISCONNECTED")
        try:
            if self._on_state_hook:
                self._on_state_hook(up)
        except Exception:
            log.exception("[%s] on_state hook failed", self.name)
