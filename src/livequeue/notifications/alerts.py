# src/livequeue/notifications/alerts.py
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import IO, Optional, Protocol, Sequence

import requests

log = logging.getLogger("livequeue.notifications.alerts")

NEW_ORDER_TEXT = "New order received"


class NewOrderAlert(Protocol):
    name: str

    def available(self) -> bool: ...

    def fire(self) -> None: ...


def _env(name: str) -> str:
    v = os.getenv(name)
    return v.strip() if isinstance(v, str) else ""


# -------------------------
# tone
# -------------------------
class BellAlert:
    """Terminal bell; only meaningful when someone is looking at a TTY."""

    name = "bell"

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def available(self) -> bool:
        try:
            return bool(self.stream.isatty())
        except (AttributeError, ValueError):
            return False

    def fire(self) -> None:
        self.stream.write("\a")
        self.stream.flush()


# -------------------------
# remote pulse (staff phone)
# -------------------------
@dataclass(frozen=True)
class TelegramTarget:
    bot_token: str
    chat_id: str


class TelegramAlert:
    """
    Pushes a short message to a staff chat via the Telegram Bot API.

    Env:
      TELEGRAM_BOT_TOKEN
      TELEGRAM_CHAT_ID
    """

    name = "telegram"

    def __init__(
        self,
        target: Optional[TelegramTarget] = None,
        *,
        text: str = NEW_ORDER_TEXT,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if target is None:
            token, chat = _env("TELEGRAM_BOT_TOKEN"), _env("TELEGRAM_CHAT_ID")
            target = TelegramTarget(bot_token=token, chat_id=chat) if token and chat else None
        self.target = target
        self.text = text
        self.timeout = float(timeout)
        self.sess = session or requests.Session()

    def available(self) -> bool:
        return self.target is not None

    def fire(self) -> None:
        if self.target is None:
            log.warning("Telegram target not configured (missing token/chat_id)")
            return
        url = f"https://api.telegram.org/bot{self.target.bot_token}/sendMessage"
        payload = {
            "chat_id": self.target.chat_id,
            "text": self.text,
            "disable_web_page_preview": True,
        }
        r = self.sess.post(url, json=payload, timeout=self.timeout)
        if r.status_code != 200:
            raise RuntimeError(f"Telegram send failed: {r.status_code} {r.text[:300]}")


class NullAlert:
    name = "none"

    def available(self) -> bool:
        return True

    def fire(self) -> None:
        return None


def select_alert(candidates: Sequence[NewOrderAlert]) -> NewOrderAlert:
    """Pick the first available notifier once, at startup."""
    for c in candidates:
        try:
            if c.available():
                log.info("new-order alert: %s", c.name)
                return c
        except Exception:
            log.exception("alert availability check failed: %s", getattr(c, "name", c))
    log.info("new-order alert: none available")
    return NullAlert()


def default_alert() -> NewOrderAlert:
    return select_alert([BellAlert(), TelegramAlert()])
