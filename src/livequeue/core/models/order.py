# src/livequeue/core/models/order.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from src.livequeue.core.models.enums import FulfillmentType


@dataclass(frozen=True, slots=True)
class Order:
    """
    Order summary as mirrored from the server.

    The local copy is a cache: it is replaced wholesale on every successful
    fetch and never patched field by field.
    """

    # --- identity ---
    id: str
    status: str

    # --- list fields ---
    fulfillment: FulfillmentType = FulfillmentType.COLLECTION
    total: Decimal = Decimal("0.00")
    eta_minutes: Optional[int] = None
    created_at: Optional[datetime] = None
    customer: str = "Customer"

    # --- optional ---
    order_number: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None

    def eta_or(self, default: int) -> int:
        return self.eta_minutes if self.eta_minutes is not None else int(default)


@dataclass(frozen=True, slots=True)
class SelectedAttribute:
    name: str
    items: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LineItem:
    name: str
    qty: int = 1
    price: Decimal = Decimal("0.00")
    notes: str = ""
    attributes: tuple[SelectedAttribute, ...] = ()


@dataclass(frozen=True, slots=True)
class Charges:
    subtotal: Decimal = Decimal("0.00")
    service_charge: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    tips: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class OrderDetail:
    """Expanded payload fetched lazily when an order is opened."""

    order: Order
    items: tuple[LineItem, ...] = ()
    charges: Charges = field(default_factory=Charges)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_notes: Optional[str] = None

    @property
    def id(self) -> str:
        return self.order.id

    @property
    def status(self) -> str:
        return self.order.status

    @property
    def eta_minutes(self) -> Optional[int]:
        return self.order.eta_minutes
