# src/livequeue/session/session.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

log = logging.getLogger("livequeue.session")

SessionListener = Callable[["AppSession"], None]


@dataclass(frozen=True)
class Identity:
    id: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    branch_id: Optional[str] = None
    branch_name: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Identity":
        branch = d.get("branch") if isinstance(d.get("branch"), dict) else {}
        branch_id = branch.get("id") or d.get("branchId")
        return cls(
            id=str(d.get("id") or d.get("_id") or ""),
            email=str(d.get("email") or ""),
            first_name=str(d.get("firstName") or ""),
            last_name=str(d.get("lastName") or ""),
            role=str(d.get("role") or ""),
            branch_id=str(branch_id) if branch_id else None,
            branch_name=str(branch["name"]) if branch.get("name") else None,
        )

    @property
    def display_name(self) -> str:
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email


class AppSession:
    """
    Explicit application-session handle.

    Created once at startup and passed to whoever needs identity; login and
    logout notify listeners (push supervisor, engine owners).
    Token persistence belongs to the caller.
    """

    def __init__(self, *, token: Optional[str] = None, identity: Optional[Identity] = None) -> None:
        self._lock = threading.RLock()
        self._token = token or None
        self._identity = identity
        self._listeners: list[SessionListener] = []

    # ---- state ----

    @property
    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def identity(self) -> Optional[Identity]:
        with self._lock:
            return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def branch_id(self) -> Optional[str]:
        ident = self.identity
        return ident.branch_id if ident else None

    @property
    def display_name(self) -> str:
        ident = self.identity
        return ident.display_name if ident else ""

    @property
    def branch_name(self) -> str:
        ident = self.identity
        return (ident.branch_name or "") if ident else ""

    # ---- lifecycle ----

    def login(self, token: str, identity: Optional[Identity] = None) -> None:
        if not token:
            raise ValueError("login requires a non-empty token")
        with self._lock:
            self._token = str(token)
            self._identity = identity
        log.info("session login: user=%s branch=%s", self.display_name or "-", self.branch_id or "-")
        self._notify()

    def logout(self) -> None:
        with self._lock:
            if self._token is None and self._identity is None:
                return
            self._token = None
            self._identity = None
        log.info("session logout")
        self._notify()

    # ---- listeners ----

    def subscribe(self, listener: SessionListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(self)
            except Exception:
                log.exception("session listener failed: %r", cb)
