# src/livequeue/core/orders/history.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from src.livequeue.core.models.order import Order
from src.livequeue.core.models.window import DateWindow
from src.livequeue.gateway.base import OrderGateway
from src.livequeue.gateway.errors import user_message
from src.livequeue.session.session import AppSession

log = logging.getLogger("livequeue.history")


class OrderHistory:
    """Past orders over an arbitrary date range, every status included."""

    def __init__(self, *, gateway: OrderGateway, session: AppSession) -> None:
        self.gateway = gateway
        self.session = session
        self.orders: tuple[Order, ...] = ()
        self.window: Optional[DateWindow] = None
        self.loading = False
        self.error: Optional[str] = None

    def load(self, from_date: date, to_date: date) -> bool:
        window = DateWindow.ordered(from_date, to_date)
        self.window = window
        self.loading = True
        self.error = None
        try:
            rows = self.gateway.list_orders_by_date(
                start_date=window.start,
                end_date=window.end,
                branch_id=self.session.branch_id,
            )
        except Exception as e:
            log.warning("history load failed %s..%s: %s", window.start_str, window.end_str, e)
            self.error = user_message(e, "Failed to load")
            return False
        finally:
            self.loading = False

        self.orders = tuple(rows)
        log.info("history loaded %s..%s orders=%d", window.start_str, window.end_str, len(self.orders))
        return True
