# src/livequeue/gateway/rest.py
from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable, Optional

import requests

from src.livequeue.core.models.enums import OrderStatus
from src.livequeue.core.models.order import Order, OrderDetail
from src.livequeue.core.models.window import fmt_day
from src.livequeue.core.orders.parser import parse_order_detail, parse_orders
from src.livequeue.gateway.base import OrderGateway
from src.livequeue.gateway.errors import DecodeError, GatewayError

BASE_URL = "https://dev.feasto.co.uk/api"

MUTABLE_STATUSES = frozenset({OrderStatus.PROCESSING.value, OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value})

log = logging.getLogger("livequeue.gateway.rest")


def _server_message(r: requests.Response) -> Optional[str]:
    try:
        payload = r.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    msg = payload.get("message")
    if msg is None and isinstance(payload.get("error"), dict):
        msg = payload["error"].get("message")
    if msg is None:
        msg = payload.get("error") if isinstance(payload.get("error"), str) else None
    return str(msg) if msg else None


def _unwrap_list(payload: Any) -> list:
    data = payload.get("data") if isinstance(payload, dict) else payload
    if data is None:
        return []
    if not isinstance(data, list):
        raise DecodeError(f"expected a list of orders, got {type(data).__name__}")
    return data


def _unwrap_one(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class OrdersREST(OrderGateway):
    """
    Orders REST client (bearer token), with retry/backoff for 429/5xx and transport errors.
    """

    def __init__(
        self,
        *,
        token_provider: Callable[[], Optional[str]],
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider

        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self.backoff_base = float(backoff_base)

        self.sess = session or requests.Session()
        self.sess.headers.update({"Content-Type": "application/json"})

    # ---------------------------------------------------------------------
    # CORE REQUEST (WITH BACKOFF)
    # ---------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        token = self.token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        last_err: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                r = self.sess.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                last_err = e
                sleep = self.backoff_base * attempt
                log.warning(
                    "request error (%s %s), retry %d/%d, sleep %.1fs | %r",
                    method, path, attempt, self.max_retries, sleep, e,
                )
                if attempt < self.max_retries:
                    time.sleep(sleep)
                continue

            # --- RATE LIMIT / TEMP SERVER ERRORS ---
            if r.status_code == 429 or r.status_code >= 500:
                sleep = self.backoff_base * attempt
                last_err = GatewayError(
                    f"HTTP {r.status_code} {method} {path}",
                    status=r.status_code,
                    server_message=_server_message(r),
                )
                log.warning(
                    "HTTP %d (%s %s), retry %d/%d, sleep %.1fs",
                    r.status_code, method, path, attempt, self.max_retries, sleep,
                )
                if attempt < self.max_retries:
                    time.sleep(sleep)
                continue

            # --- OTHER ERRORS ---
            if r.status_code >= 400:
                msg = _server_message(r)
                raise GatewayError(
                    f"HTTP {r.status_code} {method} {path}: {msg or r.text[:300]}",
                    status=r.status_code,
                    server_message=msg,
                )

            # --- OK ---
            if not r.text:
                return {}
            try:
                return r.json()
            except ValueError:
                raise DecodeError(f"{method} {path}: response is not JSON")

        if isinstance(last_err, GatewayError):
            raise last_err
        raise GatewayError(
            f"request failed after {self.max_retries} retries: {method} {path} | last_err={last_err!r}"
        )

    def _get(self, path: str, *, params: dict[str, Any] | None = None):
        return self._request("GET", path, params=params)

    def _post(self, path: str, *, json: dict[str, Any] | None = None):
        return self._request("POST", path, json=json)

    def _patch(self, path: str, *, json: dict[str, Any] | None = None):
        return self._request("PATCH", path, json=json)

    # ---------------------------------------------------------------------
    # API METHODS
    # ---------------------------------------------------------------------

    def list_orders(
        self,
        *,
        status: str,
        start_date: date,
        end_date: date,
        branch_id: Optional[str] = None,
    ) -> list[Order]:
        params: dict[str, Any] = {"status": status, "startDate": fmt_day(start_date), "endDate": fmt_day(end_date)}
        if branch_id:
            params["branchId"] = branch_id
        return parse_orders(_unwrap_list(self._get("/orders", params=params)))

    def list_orders_by_date(
        self,
        *,
        start_date: date,
        end_date: date,
        branch_id: Optional[str] = None,
    ) -> list[Order]:
        params: dict[str, Any] = {"startDate": fmt_day(start_date), "endDate": fmt_day(end_date)}
        if branch_id:
            params["branchId"] = branch_id
        return parse_orders(_unwrap_list(self._get("/orders", params=params)))

    def fetch_order(self, order_id: str, *, branch_id: Optional[str] = None) -> OrderDetail:
        params = {"branchId": branch_id} if branch_id else None
        return parse_order_detail(_unwrap_one(self._get(f"/orders/{order_id}", params=params)))

    def update_status(self, order_id: str, status: str) -> None:
        s = str(status).lower()
        if s not in MUTABLE_STATUSES:
            raise GatewayError(f"status {status!r} cannot be set from the client")
        self._patch(f"/orders/{order_id}/status", json={"status": s})

    def update_estimated_time(self, order_id: str, minutes: int) -> None:
        m = int(minutes)
        if m < 0:
            raise GatewayError(f"estimated time must be non-negative, got {minutes!r}")
        self._patch(f"/orders/{order_id}/estimated-time", json={"estimatedTimeToComplete": m})

    def login(self, *, email: str, password: str) -> Any:
        """Raw login payload; shape normalization lives in gateway.auth."""
        return self._post("/auth/login", json={"email": email, "password": password})
