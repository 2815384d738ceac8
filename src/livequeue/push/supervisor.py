# src/livequeue/push/supervisor.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from src.livequeue.push.channel import OrderEventHandler, PushChannel, StateCallback
from src.livequeue.session.session import AppSession

log = logging.getLogger("livequeue.push.supervisor")

ChannelFactory = Callable[..., PushChannel]


class PushSupervisor:
    """
    Ties the push channel lifecycle to the session:
      token cleared  -> channel torn down
      token acquired -> new channel built, started, branch scope joined
    """

    def __init__(
        self,
        *,
        session: AppSession,
        url: str,
        on_event: OrderEventHandler,
        on_state: Optional[StateCallback] = None,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        channel_factory: ChannelFactory = PushChannel,
    ) -> None:
        self.session = session
        self.url = url
        self.on_event = on_event
        self.on_state = on_state
        self.reconnect_attempts = int(reconnect_attempts)
        self.reconnect_delay = float(reconnect_delay)
        self._factory = channel_factory

        self._lock = threading.Lock()
        self._channel: Optional[PushChannel] = None
        self._token: Optional[str] = None

    @property
    def channel(self) -> Optional[PushChannel]:
        return self._channel

    @property
    def is_connected(self) -> bool:
        ch = self._channel
        return bool(ch and ch.is_connected)

    def start(self) -> None:
        self.session.subscribe(self._on_session)
        self._on_session(self.session)

    def close(self) -> None:
        self.session.unsubscribe(self._on_session)
        with self._lock:
            self._teardown()

    def _on_session(self, session: AppSession, *_a: Any) -> None:
        token = session.token
        with self._lock:
            if token == self._token and (token is None or self._channel is not None):
                return
            self._teardown()
            if token is None:
                return
            self._token = token
            ch = self._factory(
                url=self.url,
                token=token,
                branch_id=session.branch_id,
                reconnect_attempts=self.reconnect_attempts,
                reconnect_delay=self.reconnect_delay,
                on_state=self.on_state,
            )
            ch.on(self.on_event)
            self._channel = ch
            ch.start()
            log.info("push channel started for branch=%s", session.branch_id or "-")

    def _teardown(self) -> None:
        ch = self._channel
        self._channel = None
        self._token = None
        if ch is None:
            return
        ch.off(self.on_event)
        ch.stop()
        log.info("push channel torn down")
