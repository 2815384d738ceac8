# src/livequeue/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from src.livequeue.core.orders.state_machine import DELAY_CHOICES
from src.livequeue.gateway.rest import BASE_URL
from src.livequeue.push.channel import SOCKET_PATH


def load_yaml(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping (dict).")
    return data


@dataclass
class LiveQueueConfig:
    """Runtime settings for the live orders client. Secrets stay in ENV."""

    # --- REST
    api_base_url: str = BASE_URL
    timeout_sec: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5

    # --- push channel
    socket_url: str = "https://dev.feasto.co.uk"
    socket_path: str = SOCKET_PATH
    reconnect_attempts: int = 5
    reconnect_delay_sec: float = 1.0

    # --- engine
    poll_interval_sec: float = 0.0  # 0 => push-only
    delay_choices: Tuple[int, ...] = DELAY_CHOICES
    default_eta_minutes: int = 20

    # --- env names
    email_env: str = "LIVE_ORDERS_EMAIL"
    password_env: str = "LIVE_ORDERS_PASSWORD"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LiveQueueConfig":
        def _as_int(x: Any, default: int) -> int:
            if x in (None, ""):
                return default
            try:
                return int(x)
            except Exception:
                return default

        def _as_float(x: Any, default: float) -> float:
            try:
                return float(x)
            except Exception:
                return default

        def _as_str(x: Any, default: str) -> str:
            s = str(x).strip() if x is not None else ""
            return s or default

        base = cls()
        choices = d.get("delay_choices")
        if isinstance(choices, (list, tuple)):
            parsed = tuple(_as_int(c, -1) for c in choices)
            delay_choices = tuple(c for c in parsed if c > 0) or base.delay_choices
        else:
            delay_choices = base.delay_choices

        return cls(
            api_base_url=_as_str(d.get("api_base_url"), base.api_base_url),
            timeout_sec=_as_float(d.get("timeout_sec"), base.timeout_sec),
            max_retries=max(1, _as_int(d.get("max_retries"), base.max_retries)),
            backoff_base=_as_float(d.get("backoff_base"), base.backoff_base),
            socket_url=_as_str(d.get("socket_url"), base.socket_url),
            socket_path=_as_str(d.get("socket_path"), base.socket_path),
            reconnect_attempts=max(0, _as_int(d.get("reconnect_attempts"), base.reconnect_attempts)),
            reconnect_delay_sec=max(0.0, _as_float(d.get("reconnect_delay_sec"), base.reconnect_delay_sec)),
            poll_interval_sec=max(0.0, _as_float(d.get("poll_interval_sec"), base.poll_interval_sec)),
            delay_choices=delay_choices,
            default_eta_minutes=max(0, _as_int(d.get("default_eta_minutes"), base.default_eta_minutes)),
            email_env=_as_str(d.get("email_env"), base.email_env),
            password_env=_as_str(d.get("password_env"), base.password_env),
        )

    @classmethod
    def from_file(cls, path: Path) -> "LiveQueueConfig":
        return cls.from_dict(load_yaml(path))
