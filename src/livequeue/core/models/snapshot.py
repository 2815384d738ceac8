from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.livequeue.core.models.enums import Action, DetailState, Tab, TypeFilter
from src.livequeue.core.models.order import Order, OrderDetail
from src.livequeue.core.models.window import DateWindow


@dataclass(frozen=True, slots=True)
class Counts:
    new: int = 0
    in_progress: int = 0
    complete: int = 0

    @property
    def total(self) -> int:
        return self.new + self.in_progress + self.complete


@dataclass(frozen=True, slots=True)
class DetailView:
    state: DetailState = DetailState.CLOSED
    order_id: Optional[str] = None
    detail: Optional[OrderDetail] = None
    actions: tuple[Action, ...] = ()


@dataclass(frozen=True, slots=True)
class EngineSnapshot:
    """Read-only view handed to the presentation layer."""

    tab: Tab
    type_filter: TypeFilter
    window: DateWindow
    orders: tuple[Order, ...]
    counts: Counts
    connected: bool
    loading: bool
    error: Optional[str]
    detail: DetailView
