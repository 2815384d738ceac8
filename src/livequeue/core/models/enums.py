from __future__ import annotations
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Tab(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"

    @property
    def status(self) -> OrderStatus:
        return TAB_STATUS[self]


TAB_STATUS: dict[Tab, OrderStatus] = {
    Tab.NEW: OrderStatus.PENDING,
    Tab.IN_PROGRESS: OrderStatus.PROCESSING,
    Tab.COMPLETE: OrderStatus.COMPLETED,
}


class FulfillmentType(str, Enum):
    DELIVERY = "delivery"
    COLLECTION = "collection"


class TypeFilter(str, Enum):
    ALL = "all"
    COLLECTION = "collection"
    DELIVERY = "delivery"
    TABLE = "table"  # no server data carries this yet


class DetailState(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    OPEN = "open"
    MUTATING = "mutating"


class Action(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    READY = "ready"
    CANCEL = "cancel"
    DELAY = "delay"
    PRINT = "print"
