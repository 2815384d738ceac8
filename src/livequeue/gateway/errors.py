# src/livequeue/gateway/errors.py
from __future__ import annotations

from typing import Optional


class GatewayError(RuntimeError):
    """
    Single failure type raised by the order gateway.

    Transport failures (request never completed) and application failures
    (server answered with an error payload) both end up here; `server_message`
    is only set for the latter.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        server_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.server_message = server_message


class DecodeError(GatewayError):
    """Server payload violates the expected shape of an order."""


def user_message(exc: BaseException, fallback: str) -> str:
    """Collapse any failure into the one string shown to staff."""
    if isinstance(exc, GatewayError):
        msg = (exc.server_message or "").strip()
        if msg:
            return msg
        if isinstance(exc, DecodeError):
            return f"{fallback}: {exc}"
    return fallback
