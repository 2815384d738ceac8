# src/livequeue/gateway/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from src.livequeue.gateway.errors import DecodeError
from src.livequeue.gateway.rest import OrdersREST
from src.livequeue.session.session import Identity


@dataclass(frozen=True)
class LoginResult:
    token: str
    identity: Optional[Identity]


def parse_login_response(data: Any) -> LoginResult:
    """Token at token | accessToken | data.token, user at user | data.user."""
    d = data if isinstance(data, dict) else {}
    inner = d.get("data") if isinstance(d.get("data"), dict) else {}
    token = d.get("token") or d.get("accessToken") or inner.get("token")
    if not token:
        raise DecodeError("Invalid login response: missing token")
    user = d.get("user") or inner.get("user")
    return LoginResult(token=str(token), identity=Identity.from_dict(user) if isinstance(user, dict) else None)


def login(client: OrdersREST, *, email: str, password: str) -> LoginResult:
    return parse_login_response(client.login(email=email, password=password))
