# src/livequeue/gateway/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from src.livequeue.core.models.order import Order, OrderDetail


class OrderGateway(ABC):
    """
    Request/response access to the remote order service.
    Implementations MUST be stateless wrt engine state and raise GatewayError on failure.
    """

    # ---- reads ----

    @abstractmethod
    def list_orders(
        self,
        *,
        status: str,
        start_date: date,
        end_date: date,
        branch_id: Optional[str] = None,
    ) -> list[Order]:
        ...

    @abstractmethod
    def list_orders_by_date(
        self,
        *,
        start_date: date,
        end_date: date,
        branch_id: Optional[str] = None,
    ) -> list[Order]:
        ...

    @abstractmethod
    def fetch_order(self, order_id: str, *, branch_id: Optional[str] = None) -> OrderDetail:
        ...

    # ---- writes ----

    @abstractmethod
    def update_status(self, order_id: str, status: str) -> None:
        ...

    @abstractmethod
    def update_estimated_time(self, order_id: str, minutes: int) -> None:
        """`minutes` is the new absolute offset."""
        ...
