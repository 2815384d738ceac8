# src/livequeue/core/engine/loop.py
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Optional

from src.livequeue.core.engine.engine import LiveQueueEngine

log = logging.getLogger("livequeue.engine.loop")

PUSH = "on_push_events"

# engine methods reachable through the inbox
_ROUTES = frozenset({
    "refresh",
    "set_tab",
    "set_type_filter",
    "set_date_window",
    "set_start_offset",
    "set_connected",
    "select_order",
    "close_detail",
    "accept",
    "reject",
    "ready",
    "cancel",
    "delay",
    "print_receipt",
    PUSH,
})


@dataclass(slots=True)
class Message:
    kind: str
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


class Inbox:
    """
    FIFO of engine messages.

    take() hands back the head message; a run of consecutive push messages
    at the head is collapsed into one carrying all payloads.
    """

    def __init__(self) -> None:
        self._q: Deque[Message] = deque()
        self._lock = threading.RLock()
        self._not_empty = threading.Condition(self._lock)

    def put(self, msg: Message) -> None:
        with self._lock:
            self._q.append(msg)
            self._not_empty.notify()

    def __len__(self) -> int:
        with self._lock:
            return len(self._q)

    def take(self, timeout: Optional[float] = None) -> Optional[Message]:
        with self._lock:
            end_time = None if timeout is None else time.monotonic() + max(0.0, timeout)
            while not self._q:
                if end_time is None:
                    self._not_empty.wait()
                else:
                    remaining = end_time - time.monotonic()
                    if remaining <= 0:
                        return None
                    self._not_empty.wait(remaining)

            head = self._q.popleft()
            if head.kind != PUSH:
                return head

            payloads = list(head.args[0]) if head.args else []
            while self._q and self._q[0].kind == PUSH:
                nxt = self._q.popleft()
                payloads.extend(nxt.args[0] if nxt.args else [])
            return Message(PUSH, (payloads,))


class EngineLoop(threading.Thread):
    """
    The one dispatcher that calls into the engine.

    User intents, push events, connection changes and poll ticks are all
    posted here and applied one at a time, in arrival order.
    """

    def __init__(
        self,
        engine: LiveQueueEngine,
        *,
        poll_interval_sec: float = 0.0,
        name: str = "EngineLoop",
    ) -> None:
        super().__init__(daemon=True, name=name)
        self.engine = engine
        self.poll_interval_sec = max(0.0, float(poll_interval_sec))
        self.inbox = Inbox()
        self._stop_evt = threading.Event()
        self._next_poll: Optional[float] = None

    # ------------------------------------------------------------------
    # posting (any thread)
    # ------------------------------------------------------------------
    def post(self, kind: str, *args: Any, **kwargs: Any) -> None:
        if kind not in _ROUTES:
            raise ValueError(f"unknown engine message: {kind}")
        self.inbox.put(Message(kind, args, kwargs))

    def post_push(self, payload: Any) -> None:
        self.inbox.put(Message(PUSH, ([payload],)))

    def post_connection(self, up: bool) -> None:
        self.post("set_connected", bool(up))

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def run(self) -> None:
        log.info("engine loop started (poll=%.1fs)", self.poll_interval_sec)
        if self.poll_interval_sec > 0:
            self._next_poll = time.monotonic() + self.poll_interval_sec

        while not self._stop_evt.is_set():
            self.run_once(timeout=self._wait_timeout())
            self._maybe_poll()

        log.info("engine loop stopped")

    def stop(self) -> None:
        self._stop_evt.set()
        # wake the inbox
        self.inbox.put(Message("refresh", (), {"silent": True}))

    def run_once(self, timeout: Optional[float] = 0.0) -> bool:
        msg = self.inbox.take(timeout=timeout)
        if msg is None:
            return False
        if self._stop_evt.is_set():
            return False
        self._dispatch(msg)
        return True

    def drain(self) -> int:
        n = 0
        while self.run_once(timeout=0.0):
            n += 1
        return n

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _dispatch(self, msg: Message) -> None:
        handler = getattr(self.engine, msg.kind)
        try:
            handler(*msg.args, **msg.kwargs)
        except Exception:
            log.exception("engine message failed: %s", msg.kind)

    def _wait_timeout(self) -> float:
        if self._next_poll is None:
            return 0.5
        return max(0.0, min(0.5, self._next_poll - time.monotonic()))

    def _maybe_poll(self) -> None:
        if self._next_poll is None or self._stop_evt.is_set():
            return
        now = time.monotonic()
        if now < self._next_poll:
            return
        self._next_poll = now + self.poll_interval_sec
        try:
            self.engine.refresh(silent=True)
        except Exception:
            log.exception("poll refresh failed")
