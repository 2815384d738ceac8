# src/livequeue/core/engine/engine.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Callable, Optional, Protocol, Sequence

from src.livequeue.core.models.enums import Action, DetailState, Tab, TypeFilter
from src.livequeue.core.models.order import Order, OrderDetail
from src.livequeue.core.models.snapshot import DetailView, EngineSnapshot
from src.livequeue.core.models.window import DateWindow
from src.livequeue.core.orders.counts import compute_counts, tab_view
from src.livequeue.core.orders.parser import is_creation_event
from src.livequeue.core.orders.state_machine import (
    DELAY_CHOICES,
    ActionSpec,
    available_actions,
    can_transition,
    delayed_eta,
    resolve_action,
    validate_delay,
)
from src.livequeue.gateway.base import OrderGateway
from src.livequeue.gateway.errors import user_message
from src.livequeue.notifications.alerts import NewOrderAlert, NullAlert
from src.livequeue.session.session import AppSession

Confirm = Callable[[str], bool]
SnapshotListener = Callable[[EngineSnapshot], None]


class ReceiptPrinter(Protocol):
    def print_order(self, detail: OrderDetail) -> None: ...


class LiveQueueEngine:
    """
    Single authority for what the current tab shows and how many orders sit
    in each bucket.

    Responsibilities:
      ✔ tab / type filter / date window selection
      ✔ list + counts refresh (two concurrent requests)
      ✔ push-triggered silent refresh (full re-fetch, payload ignored)
      ✔ detail view state machine and mutations
      ✔ read-only snapshots for the presentation layer

    Every public operation resolves to a state update or an error string;
    none of them raise gateway failures to the caller.
    """

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------
    def __init__(
        self,
        *,
        gateway: OrderGateway,
        session: AppSession,
        alert: Optional[NewOrderAlert] = None,
        confirm: Optional[Confirm] = None,
        printer: Optional[ReceiptPrinter] = None,
        delay_choices: Sequence[int] = DELAY_CHOICES,
        today: Callable[[], date] = date.today,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.alert: NewOrderAlert = alert or NullAlert()
        self.delay_choices = tuple(int(x) for x in delay_choices)
        self.logger = logger or logging.getLogger("livequeue.engine")

        self._confirm = confirm
        self._printer = printer
        self._today = today

        self._lock = threading.RLock()
        self._rest_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="lq_rest")
        self._alert_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lq_alert")
        self._listeners: list[SnapshotListener] = []

        # --- selection ---
        self._tab = Tab.NEW
        self._type_filter = TypeFilter.ALL
        self._window = DateWindow.today(today=today())

        # --- fetched state (replaced wholesale) ---
        self._tab_orders: tuple[Order, ...] = ()
        self._scope_orders: tuple[Order, ...] = ()

        # --- request stamping: stale responses are discarded ---
        self._list_seq = 0
        self._list_applied = 0
        self._counts_seq = 0
        self._counts_applied = 0

        # --- ui flags ---
        self._loading = False
        self._error: Optional[str] = None
        self._connected = False

        # --- detail ---
        self._detail_state = DetailState.CLOSED
        self._selected_id: Optional[str] = None
        self._detail: Optional[OrderDetail] = None

    def close(self) -> None:
        self._rest_pool.shutdown(wait=True)
        self._alert_pool.shutdown(wait=True)

    # ------------------------------------------------------------------
    # snapshots
    # ------------------------------------------------------------------
    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            st = self._detail_state
            return EngineSnapshot(
                tab=self._tab,
                type_filter=self._type_filter,
                window=self._window,
                orders=tuple(tab_view(self._tab_orders, self._tab, self._type_filter)),
                counts=compute_counts(self._scope_orders, self._type_filter),
                connected=self._connected,
                loading=self._loading,
                error=self._error,
                detail=DetailView(
                    state=st,
                    order_id=self._selected_id,
                    detail=self._detail if st is not DetailState.CLOSED else None,
                    actions=available_actions(self._tab) if st is DetailState.OPEN else (),
                ),
            )

    def subscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _changed(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        snap = self.snapshot()
        for cb in listeners:
            try:
                cb(snap)
            except Exception:
                self.logger.exception("[ENGINE] snapshot listener failed")

    # ------------------------------------------------------------------
    # selection intents
    # ------------------------------------------------------------------
    def set_tab(self, tab: Tab | str) -> None:
        try:
            new_tab = Tab(tab)
        except ValueError:
            self._reject_intent(f"Unknown tab: {tab}")
            return
        with self._lock:
            self._tab = new_tab
            # an open detail belongs to the tab it was opened from
            if self._detail_state is not DetailState.CLOSED:
                self.logger.info("[ENGINE] tab -> %s closes detail id=%s", new_tab.value, self._selected_id)
                self._clear_detail()
        self.refresh()

    def set_type_filter(self, type_filter: TypeFilter | str) -> None:
        try:
            new_filter = TypeFilter(type_filter)
        except ValueError:
            self._reject_intent(f"Unknown order type: {type_filter}")
            return
        with self._lock:
            self._type_filter = new_filter
        self.refresh()

    def set_date_window(self, window: DateWindow) -> None:
        if not isinstance(window, DateWindow):
            self._reject_intent(f"Invalid date range: {window!r}")
            return
        with self._lock:
            self._window = window
        self.refresh()

    def set_start_offset(self, days: int) -> None:
        """Today / yesterday / two days ago; the end bound stays at today."""
        try:
            window = DateWindow.from_offset(days, today=self._today())
        except (TypeError, ValueError):
            self._reject_intent(f"Invalid start day: {days!r}")
            return
        self.set_date_window(window)

    def _reject_intent(self, message: str) -> None:
        self.logger.warning("[ENGINE] %s", message)
        with self._lock:
            self._error = message
        self._changed()

    def set_connected(self, up: bool) -> None:
        with self._lock:
            if self._connected == bool(up):
                return
            self._connected = bool(up)
        self._changed()

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------
    def refresh(self, *, silent: bool = False) -> None:
        """
        Fetch the tab list and the window superset for counts, concurrently.

        silent=True (push / timer path): no loading flag, failures only logged.
        A failed list fetch keeps the last good list; a failed counts fetch
        keeps stale counts and is never surfaced.
        """
        with self._lock:
            tab = self._tab
            window = self._window
            self._list_seq += 1
            self._counts_seq += 1
            list_seq = self._list_seq
            counts_seq = self._counts_seq
            if not silent:
                self._loading = True
                self._error = None
        if not silent:
            self._changed()

        branch_id = self.session.branch_id
        f_list = self._rest_pool.submit(
            self.gateway.list_orders,
            status=tab.status.value,
            start_date=window.start,
            end_date=window.end,
            branch_id=branch_id,
        )
        f_counts = self._rest_pool.submit(
            self.gateway.list_orders_by_date,
            start_date=window.start,
            end_date=window.end,
            branch_id=branch_id,
        )

        try:
            orders = f_list.result()
        except Exception as e:
            if silent:
                self.logger.warning("[ENGINE] silent refresh failed tab=%s: %s", tab.value, e)
            else:
                self.logger.warning("[ENGINE] refresh failed tab=%s: %s", tab.value, e)
                with self._lock:
                    if list_seq > self._list_applied:
                        self._error = user_message(e, "Failed to load orders")
                    else:
                        self.logger.debug("[ENGINE] stale list failure seq=%d ignored", list_seq)
        else:
            with self._lock:
                if list_seq > self._list_applied:
                    self._tab_orders = tuple(orders)
                    self._list_applied = list_seq
                else:
                    self.logger.debug("[ENGINE] stale list response seq=%d dropped", list_seq)
        finally:
            if not silent:
                with self._lock:
                    self._loading = False

        try:
            scope = f_counts.result()
        except Exception as e:
            self.logger.warning("[ENGINE] counts fetch failed: %s", e)
        else:
            with self._lock:
                if counts_seq > self._counts_applied:
                    self._scope_orders = tuple(scope)
                    self._counts_applied = counts_seq
                else:
                    self.logger.debug("[ENGINE] stale counts response seq=%d dropped", counts_seq)

        self._changed()

    # ------------------------------------------------------------------
    # push
    # ------------------------------------------------------------------
    def on_push_event(self, event: Any) -> None:
        self.on_push_events([event])

    def on_push_events(self, events: Sequence[Any]) -> None:
        """
        One or more coalesced push notifications -> at most one alert and
        exactly one silent refresh. Payloads are never applied as state.
        """
        if any(is_creation_event(e) for e in events):
            self._alert_pool.submit(self._fire_alert)
        self.refresh(silent=True)

    def _fire_alert(self) -> None:
        try:
            self.alert.fire()
        except Exception as e:
            self.logger.warning("[ENGINE] new-order alert failed (%s): %s", getattr(self.alert, "name", "?"), e)

    # ------------------------------------------------------------------
    # detail view
    # ------------------------------------------------------------------
    def select_order(self, order_id: str) -> bool:
        with self._lock:
            if self._detail_state is not DetailState.CLOSED:
                self.logger.warning("[ENGINE] select %s ignored, detail is %s", order_id, self._detail_state.value)
                return False
            self._detail_state = DetailState.LOADING
            self._selected_id = str(order_id)
            self._detail = None
            self._error = None
        self._changed()

        try:
            detail = self.gateway.fetch_order(str(order_id), branch_id=self.session.branch_id)
        except Exception as e:
            self.logger.warning("[ENGINE] detail fetch failed id=%s: %s", order_id, e)
            with self._lock:
                self._detail_state = DetailState.CLOSED
                self._selected_id = None
                self._error = user_message(e, "Failed to load order")
            self._changed()
            return False

        with self._lock:
            if self._detail_state is not DetailState.LOADING or self._selected_id != str(order_id):
                self.logger.info("[ENGINE] detail id=%s closed while loading", order_id)
                return False
            self._detail_state = DetailState.OPEN
            self._detail = detail
        self._changed()
        return True

    def close_detail(self) -> bool:
        with self._lock:
            if self._detail_state is DetailState.CLOSED:
                return False
            if not can_transition(self._detail_state, DetailState.CLOSED):
                self.logger.warning("[ENGINE] close ignored while %s", self._detail_state.value)
                return False
            self._clear_detail()
        self._changed()
        self.refresh()
        return True

    def _clear_detail(self) -> None:
        self._detail_state = DetailState.CLOSED
        self._selected_id = None
        self._detail = None

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    def accept(self) -> bool:
        return self._status_action(Action.ACCEPT)

    def reject(self) -> bool:
        return self._status_action(Action.REJECT)

    def ready(self) -> bool:
        return self._status_action(Action.READY)

    def cancel(self) -> bool:
        return self._status_action(Action.CANCEL)

    def delay(self, minutes: int) -> bool:
        v = validate_delay(minutes, self.delay_choices)
        if not v.allow:
            self.logger.warning("[ENGINE] delay blocked: %s", v.reason)
            return False
        gated = self._gate(Action.DELAY)
        if gated is None:
            return False
        spec, detail = gated
        new_eta = delayed_eta(detail.eta_minutes, minutes)
        self.logger.info("[ENGINE] delay id=%s eta %s -> %d", detail.id, detail.eta_minutes, new_eta)
        return self._mutate(spec, detail, lambda: self.gateway.update_estimated_time(detail.id, new_eta))

    def print_receipt(self) -> bool:
        gated = self._gate(Action.PRINT)
        if gated is None:
            return False
        spec, detail = gated
        try:
            if self._printer is None:
                raise RuntimeError("no receipt printer configured")
            self._printer.print_order(detail)
        except Exception as e:
            self.logger.warning("[ENGINE] print failed id=%s: %s", detail.id, e)
            with self._lock:
                self._error = user_message(e, spec.failure_message)
            self._changed()
            return False
        return True

    def _gate(self, action: Action) -> Optional[tuple[ActionSpec, OrderDetail]]:
        with self._lock:
            d = resolve_action(tab=self._tab, state=self._detail_state, action=action)
            if not d.allow or d.spec is None or self._detail is None:
                self.logger.warning("[ENGINE] %s blocked: %s", action.value, d.reason or "no detail")
                return None
            return d.spec, self._detail

    def _status_action(self, action: Action) -> bool:
        gated = self._gate(action)
        if gated is None:
            return False
        spec, detail = gated
        if spec.target_status is None:
            self.logger.warning("[ENGINE] %s has no target status", action.value)
            return False

        if spec.confirm and not self._ask(spec.prompt):
            self.logger.info("[ENGINE] %s aborted at confirmation id=%s", action.value, detail.id)
            return False

        target = spec.target_status.value
        return self._mutate(spec, detail, lambda: self.gateway.update_status(detail.id, target))

    def _ask(self, prompt: str) -> bool:
        # no confirmer wired -> destructive actions stay blocked
        if self._confirm is None:
            return False
        try:
            return bool(self._confirm(prompt))
        except Exception:
            self.logger.exception("[ENGINE] confirmation failed")
            return False

    def _mutate(self, spec: ActionSpec, detail: OrderDetail, call: Callable[[], None]) -> bool:
        """
        Mutating -> Loading (authoritative refetch) -> refresh -> Closed.
        Failure at any step: back to Open with the error string, buttons live again.
        """
        with self._lock:
            if self._detail_state is not DetailState.OPEN or self._selected_id != detail.id:
                self.logger.warning("[ENGINE] %s dropped, detail changed", spec.action.value)
                return False
            self._detail_state = DetailState.MUTATING
            self._error = None
        self._changed()

        try:
            call()
            with self._lock:
                self._detail_state = DetailState.LOADING
            fresh = self.gateway.fetch_order(detail.id, branch_id=self.session.branch_id)
        except Exception as e:
            self.logger.warning("[ENGINE] %s failed id=%s: %s", spec.action.value, detail.id, e)
            with self._lock:
                self._detail_state = DetailState.OPEN
                self._error = user_message(e, spec.failure_message)
            self._changed()
            return False

        with self._lock:
            self._detail = fresh
        self.logger.info("[ENGINE] %s ok id=%s status=%s", spec.action.value, fresh.id, fresh.status)

        self.refresh()

        with self._lock:
            self._clear_detail()
        self._changed()
        return True
