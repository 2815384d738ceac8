# src/livequeue/core/orders/parser.py
from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from src.livequeue.core.models.enums import FulfillmentType
from src.livequeue.core.models.order import (
    Charges,
    LineItem,
    Order,
    OrderDetail,
    SelectedAttribute,
)
from src.livequeue.gateway.errors import DecodeError

_CENT = Decimal("0.01")


# ------------------------------------------------------------
# helpers
# ------------------------------------------------------------
def _first(raw: dict, *keys: str) -> Any:
    """First value that is not None among alternate field names."""
    for k in keys:
        v = raw.get(k)
        if v is not None:
            return v
    return None


def _dict(v: Any) -> dict:
    return v if isinstance(v, dict) else {}


def _str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _money(v: Any, *, field: str) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    if isinstance(v, bool):
        raise DecodeError(f"{field} must be numeric, got bool")
    try:
        d = Decimal(str(v))
    except (InvalidOperation, ValueError):
        raise DecodeError(f"{field} must be numeric, got {v!r}")
    if not d.is_finite():
        raise DecodeError(f"{field} must be finite, got {v!r}")
    if d < 0:
        raise DecodeError(f"{field} must be non-negative, got {v!r}")
    return d.quantize(_CENT)


def _minutes(v: Any) -> Optional[int]:
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        raise DecodeError("estimatedTimeToComplete must be an integer, got bool")
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise DecodeError(f"estimatedTimeToComplete must be an integer, got {v!r}")
    if not math.isfinite(f) or f != int(f):
        raise DecodeError(f"estimatedTimeToComplete must be whole minutes, got {v!r}")
    if f < 0:
        raise DecodeError(f"estimatedTimeToComplete must be non-negative, got {v!r}")
    return int(f)


def _dt(v: Any) -> Optional[datetime]:
    s = _str(v)
    if not s:
        return None
    try:
        # python < 3.11 does not accept the trailing Z
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None


def _fulfillment(raw: dict) -> FulfillmentType:
    if raw.get("orderType") == "delivery" or raw.get("deliveryMethod") == "delivery":
        return FulfillmentType.DELIVERY
    return FulfillmentType.COLLECTION


def _customer_name(raw: dict) -> str:
    user = _dict(raw.get("user"))
    first = _str(user.get("firstName")) or ""
    last = _str(user.get("lastName")) or ""
    if first or last:
        return f"{first} {last}".strip()
    return (
        _str(user.get("email"))
        or _str(_dict(raw.get("customer")).get("name"))
        or "Customer"
    )


# ------------------------------------------------------------
# order summary
# ------------------------------------------------------------
def parse_order(raw: Any) -> Order:
    """
    Normalize one order summary from the server.

    Alternate names:
      id      <- id | _id
      total   <- finalTotal | totalAmount | total
      type    <- orderType | deliveryMethod
    """
    if not isinstance(raw, dict):
        raise DecodeError(f"order must be an object, got {type(raw).__name__}")

    oid = _str(_first(raw, "id", "_id"))
    if not oid:
        raise DecodeError("order is missing id")

    status = _str(raw.get("status"))
    if not status:
        raise DecodeError(f"order {oid} is missing status")

    return Order(
        id=oid,
        status=status.lower(),
        fulfillment=_fulfillment(raw),
        total=_money(_first(raw, "finalTotal", "totalAmount", "total"), field="total"),
        eta_minutes=_minutes(raw.get("estimatedTimeToComplete")),
        created_at=_dt(raw.get("createdAt")),
        customer=_customer_name(raw),
        order_number=_str(raw.get("orderNumber")),
        payment_method=_str(raw.get("paymentMethod")) or _str(_dict(raw.get("payment")).get("method")),
        payment_status=_str(raw.get("paymentStatus")) or _str(_dict(raw.get("payment")).get("status")),
    )


def parse_orders(rows: Iterable[Any]) -> list[Order]:
    return [parse_order(r) for r in rows]


# ------------------------------------------------------------
# detail
# ------------------------------------------------------------
def _attributes(raw_attrs: Any) -> tuple[SelectedAttribute, ...]:
    if not isinstance(raw_attrs, list):
        return ()
    out: list[SelectedAttribute] = []
    for a in raw_attrs:
        a = _dict(a)
        names = tuple(
            str(si.get("itemName"))
            for si in (a.get("selectedItems") or [])
            if isinstance(si, dict) and si.get("itemName")
        )
        out.append(SelectedAttribute(name=str(a.get("attributeName") or ""), items=names))
    return tuple(out)


def _line_item(p: dict) -> LineItem:
    product = _dict(p.get("product"))
    price = _first(p, "itemTotal")
    if price is None:
        raw_price = p.get("price")
        price = raw_price.get("total") if isinstance(raw_price, dict) else raw_price
    qty = _first(p, "quantity", "qty")
    try:
        qty_i = int(qty) if qty is not None else 1
    except (TypeError, ValueError):
        raise DecodeError(f"line item quantity must be an integer, got {qty!r}")
    if qty_i < 0:
        raise DecodeError(f"line item quantity must be non-negative, got {qty!r}")
    return LineItem(
        name=_str(product.get("name")) or _str(p.get("name")) or "",
        qty=qty_i,
        price=_money(price, field="item price"),
        notes=_str(p.get("notes")) or "",
        attributes=_attributes(_first(p, "selectedAttributes", "attributes")),
    )


def parse_order_detail(raw: Any) -> OrderDetail:
    """
    Normalize the expanded order payload.

    Items come either as `items[]` (already flat) or as backend `products[]`.
    """
    order = parse_order(raw)

    items_raw = raw.get("items")
    if not (isinstance(items_raw, list) and items_raw):
        items_raw = raw.get("products")
    items = tuple(_line_item(_dict(p)) for p in (items_raw or []) if isinstance(p, dict))

    discount = _first(_dict(raw.get("discountApplied")), "discountAmount")
    if discount is None:
        discount = _dict(raw.get("discount")).get("discountAmount")
    service = raw.get("serviceCharge")
    if service is None:
        service = _dict(raw.get("serviceCharges")).get("totalAll")

    charges = Charges(
        subtotal=_money(_first(raw, "subtotal", "totalAmount"), field="subtotal"),
        service_charge=_money(service, field="serviceCharge"),
        delivery_fee=_money(raw.get("deliveryFee"), field="deliveryFee"),
        tips=_money(raw.get("tips"), field="tips"),
        tax=_money(raw.get("tax"), field="tax"),
        discount=_money(discount, field="discount"),
    )

    user = _dict(raw.get("user"))
    customer = _dict(raw.get("customer"))
    return OrderDetail(
        order=order,
        items=items,
        charges=charges,
        customer_email=_str(user.get("email")) or _str(customer.get("email")),
        customer_phone=_str(user.get("phone")) or _str(customer.get("phone")),
        customer_notes=_str(raw.get("customerNotes")),
    )


# ------------------------------------------------------------
# push events
# ------------------------------------------------------------
ORDER_CREATED = "order_created"


def is_creation_event(message: Any) -> bool:
    """Only used to decide on the alert; never for state content."""
    if message == ORDER_CREATED:
        return True
    if isinstance(message, dict):
        return message.get("event") == ORDER_CREATED or message.get("type") == ORDER_CREATED
    return False
