# src/livequeue/core/orders/counts.py
from __future__ import annotations

from typing import Iterable

from src.livequeue.core.models.enums import OrderStatus, Tab, TypeFilter
from src.livequeue.core.models.order import Order
from src.livequeue.core.models.snapshot import Counts


def filter_by_type(orders: Iterable[Order], type_filter: TypeFilter) -> list[Order]:
    """`all` is the identity, `table` is always empty."""
    tf = TypeFilter(type_filter)
    if tf is TypeFilter.ALL:
        return list(orders)
    if tf is TypeFilter.TABLE:
        return []
    return [o for o in orders if o.fulfillment.value == tf.value]


def tab_view(orders: Iterable[Order], tab: Tab, type_filter: TypeFilter) -> list[Order]:
    """Rendered list: orders whose server status maps to `tab`, then the type filter."""
    want = Tab(tab).status.value
    return filter_by_type((o for o in orders if o.status == want), type_filter)


def compute_counts(orders: Iterable[Order], type_filter: TypeFilter) -> Counts:
    """
    Partition the window superset into the three tab buckets.

    Always recomputed from scratch. Orders with any other status
    (cancelled, unknown) land in no bucket.
    """
    scoped = filter_by_type(_distinct(orders), type_filter)
    by_status: dict[str, int] = {}
    for o in scoped:
        by_status[o.status] = by_status.get(o.status, 0) + 1
    return Counts(
        new=by_status.get(OrderStatus.PENDING.value, 0),
        in_progress=by_status.get(OrderStatus.PROCESSING.value, 0),
        complete=by_status.get(OrderStatus.COMPLETED.value, 0),
    )


def _distinct(orders: Iterable[Order]) -> list[Order]:
    # last snapshot of an id wins
    seen: dict[str, Order] = {}
    for o in orders:
        seen[o.id] = o
    return list(seen.values())
