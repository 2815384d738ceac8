from __future__ import annotations

import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pytest

from src.livequeue.core.engine.engine import LiveQueueEngine
from src.livequeue.core.models.order import Order, OrderDetail
from src.livequeue.core.orders.parser import parse_order, parse_order_detail
from src.livequeue.gateway.base import OrderGateway
from src.livequeue.gateway.errors import GatewayError
from src.livequeue.session.session import AppSession, Identity

TODAY = date(2024, 5, 10)


def raw_order(oid: str, status: str, *, kind: str = "collection", total: Any = "12.50", eta: Any = None, **extra: Any) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "_id": oid,
        "status": status,
        "orderType": kind,
        "finalTotal": total,
        "createdAt": "2024-05-10T12:00:00Z",
        "user": {"firstName": "Ann", "lastName": oid.upper()},
    }
    if eta is not None:
        d["estimatedTimeToComplete"] = eta
    d.update(extra)
    return d


def make_order(oid: str, status: str, **kw: Any) -> Order:
    return parse_order(raw_order(oid, status, **kw))


def make_detail(oid: str, status: str, **kw: Any) -> OrderDetail:
    raw = raw_order(oid, status, **kw)
    raw.setdefault("products", [{"product": {"name": "Burger"}, "quantity": 2, "itemTotal": "10.00"}])
    return parse_order_detail(raw)


class FakeGateway(OrderGateway):
    """
    In-memory gateway. `orders` is the server truth; status / eta writes
    land there so a follow-up fetch sees them.
    """

    def __init__(self, orders: Optional[List[Order]] = None) -> None:
        self.orders: Dict[str, Order] = {o.id: o for o in (orders or [])}
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.hooks: Dict[str, Callable[[], None]] = {}
        self._lock = threading.Lock()

    def _enter(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, *args))
        hook = self.hooks.get(name)
        if hook:
            hook()
        err = self.fail.get(name)
        if err is not None:
            raise err

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def list_orders(self, *, status, start_date, end_date, branch_id=None):
        self._enter("list_orders", status, start_date, end_date, branch_id)
        return [o for o in self.orders.values() if o.status == status]

    def list_orders_by_date(self, *, start_date, end_date, branch_id=None):
        self._enter("list_orders_by_date", start_date, end_date, branch_id)
        return list(self.orders.values())

    def fetch_order(self, order_id, *, branch_id=None):
        self._enter("fetch_order", order_id, branch_id)
        o = self.orders.get(order_id)
        if o is None:
            raise GatewayError(f"HTTP 404 GET /orders/{order_id}", status=404, server_message="Order not found")
        return make_detail(
            o.id,
            o.status,
            kind=o.fulfillment.value,
            total=str(o.total),
            eta=o.eta_minutes,
        )

    def update_status(self, order_id, status):
        self._enter("update_status", order_id, status)
        o = self.orders[order_id]
        self.orders[order_id] = make_order(o.id, status, kind=o.fulfillment.value, total=str(o.total), eta=o.eta_minutes)

    def update_estimated_time(self, order_id, minutes):
        self._enter("update_estimated_time", order_id, minutes)
        o = self.orders[order_id]
        self.orders[order_id] = make_order(o.id, o.status, kind=o.fulfillment.value, total=str(o.total), eta=minutes)


class FakeAlert:
    name = "fake"

    def __init__(self, *, raises: bool = False) -> None:
        self.fired = 0
        self.raises = raises

    def available(self) -> bool:
        return True

    def fire(self) -> None:
        self.fired += 1
        if self.raises:
            raise RuntimeError("speaker unplugged")


class FakeConfirm:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


class FakePrinter:
    def __init__(self) -> None:
        self.printed: List[OrderDetail] = []

    def print_order(self, detail: OrderDetail) -> None:
        self.printed.append(detail)


@pytest.fixture()
def session() -> AppSession:
    return AppSession(token="tok-1", identity=Identity(id="u1", email="staff@x.io", branch_id="b1", branch_name="High St"))


@pytest.fixture()
def scenario_a_orders() -> List[Order]:
    return [
        make_order("o1", "pending", kind="delivery"),
        make_order("o2", "pending", kind="collection"),
        make_order("o3", "processing", kind="delivery"),
        make_order("o4", "completed", kind="collection"),
        make_order("o5", "cancelled", kind="delivery"),
    ]


@pytest.fixture()
def gateway(scenario_a_orders) -> FakeGateway:
    return FakeGateway(scenario_a_orders)


@pytest.fixture()
def alert() -> FakeAlert:
    return FakeAlert()


@pytest.fixture()
def make_engine(gateway, session, alert):
    engines: List[LiveQueueEngine] = []

    def _make(**kw: Any) -> LiveQueueEngine:
        kw.setdefault("gateway", gateway)
        kw.setdefault("session", session)
        kw.setdefault("alert", alert)
        kw.setdefault("today", lambda: TODAY)
        eng = LiveQueueEngine(**kw)
        engines.append(eng)
        return eng

    yield _make
    for eng in engines:
        eng.close()
