from __future__ import annotations

import pytest
from conftest import FakeConfirm, FakeGateway, FakePrinter, make_order

from src.livequeue.core.models.enums import Action, DetailState, Tab
from src.livequeue.core.orders import state_machine
from src.livequeue.core.orders.state_machine import ActionSpec
from src.livequeue.gateway.errors import GatewayError


def _state(eng):
    return eng.snapshot().detail.state


def _opened(make_engine, order_id="o1", tab=None, **kw):
    eng = make_engine(**kw)
    if tab is not None:
        eng.set_tab(tab)
    else:
        eng.refresh()
    assert eng.select_order(order_id) is True
    return eng


def test_select_opens_detail_with_tab_actions(make_engine, gateway):
    eng = _opened(make_engine)
    d = eng.snapshot().detail
    assert d.state is DetailState.OPEN
    assert d.order_id == "o1"
    assert d.detail is not None and d.detail.id == "o1"
    assert d.actions == (Action.ACCEPT, Action.REJECT, Action.DELAY, Action.PRINT)
    assert ("fetch_order", "o1", "b1") in gateway.calls


def test_select_is_ignored_unless_closed(make_engine, gateway):
    eng = _opened(make_engine)
    assert eng.select_order("o2") is False
    assert eng.snapshot().detail.order_id == "o1"
    assert gateway.names().count("fetch_order") == 1


def test_select_failure_returns_to_closed(make_engine):
    eng = make_engine()
    assert eng.select_order("missing") is False
    s = eng.snapshot()
    assert s.detail.state is DetailState.CLOSED
    assert s.detail.order_id is None
    assert s.error == "Order not found"


def test_select_failure_without_server_message(make_engine, gateway):
    eng = make_engine()
    gateway.fail["fetch_order"] = GatewayError("read timeout")
    assert eng.select_order("o1") is False
    assert eng.snapshot().error == "Failed to load order"


def test_close_detail_clears_and_refreshes(make_engine, gateway):
    eng = _opened(make_engine)
    before = gateway.names().count("list_orders")

    assert eng.close_detail() is True
    s = eng.snapshot()
    assert s.detail.state is DetailState.CLOSED
    assert s.detail.detail is None
    assert s.detail.actions == ()
    assert gateway.names().count("list_orders") == before + 1

    assert eng.close_detail() is False


def test_accept_scenario_b(make_engine, gateway):
    eng = _opened(make_engine)
    states = []
    eng.subscribe(lambda s: states.append(s.detail.state))

    assert eng.accept() is True

    names = gateway.names()
    i_update = names.index("update_status")
    assert gateway.calls[i_update] == ("update_status", "o1", "processing")
    assert names.index("fetch_order", i_update) > i_update
    assert names.index("list_orders", i_update) > names.index("fetch_order", i_update)

    s = eng.snapshot()
    assert s.detail.state is DetailState.CLOSED
    assert s.error is None
    assert [o.id for o in s.orders] == ["o2"]
    assert (s.counts.new, s.counts.in_progress, s.counts.complete) == (1, 2, 1)

    assert DetailState.MUTATING in states
    assert states[-1] is DetailState.CLOSED


def test_no_double_submit_while_mutating(make_engine, gateway):
    eng = _opened(make_engine)
    seen = []

    def during_update():
        seen.append((_state(eng), eng.snapshot().detail.actions, eng.accept()))

    gateway.hooks["update_status"] = during_update
    assert eng.accept() is True
    assert seen == [(DetailState.MUTATING, (), False)]
    assert gateway.names().count("update_status") == 1


def test_ready_moves_order_to_complete(make_engine, gateway):
    eng = _opened(make_engine, "o3", tab=Tab.IN_PROGRESS)
    assert eng.ready() is True
    assert ("update_status", "o3", "completed") in gateway.calls
    assert gateway.orders["o3"].status == "completed"


def test_cancel_declined_scenario_c(make_engine, gateway):
    confirm = FakeConfirm(False)
    eng = _opened(make_engine, "o3", tab="in-progress", confirm=confirm)

    assert eng.cancel() is False
    assert confirm.prompts == ["Are you sure you want to cancel this order?"]
    assert "update_status" not in gateway.names()
    assert _state(eng) is DetailState.OPEN
    assert eng.snapshot().detail.actions == (Action.READY, Action.CANCEL, Action.DELAY, Action.PRINT)


def test_reject_confirmed(make_engine, gateway):
    confirm = FakeConfirm(True)
    eng = _opened(make_engine, confirm=confirm)
    assert eng.reject() is True
    assert confirm.prompts == ["Are you sure you want to reject this order?"]
    assert ("update_status", "o1", "cancelled") in gateway.calls
    assert _state(eng) is DetailState.CLOSED


def test_destructive_actions_blocked_without_confirmer(make_engine, gateway):
    eng = _opened(make_engine)
    assert eng.reject() is False
    assert "update_status" not in gateway.names()
    assert _state(eng) is DetailState.OPEN


def test_raising_confirmer_counts_as_no(make_engine, gateway):
    def confirm(_prompt):
        raise RuntimeError("dialog closed")

    eng = _opened(make_engine, confirm=confirm)
    assert eng.reject() is False
    assert "update_status" not in gateway.names()


def test_delay_scenario_d(make_engine):
    gw = FakeGateway([make_order("o1", "pending", eta=20)])
    eng = _opened(make_engine, gateway=gw)

    assert eng.delay(15) is True
    assert ("update_estimated_time", "o1", 35) in gw.calls
    assert gw.orders["o1"].eta_minutes == 35
    assert _state(eng) is DetailState.CLOSED


def test_delay_without_eta_starts_from_zero(make_engine, gateway):
    eng = _opened(make_engine)
    assert eng.delay(10) is True
    assert ("update_estimated_time", "o1", 10) in gateway.calls


@pytest.mark.parametrize("minutes", [7, 0, -5, 60, True, "15"])
def test_invalid_delay_makes_no_call(make_engine, gateway, minutes):
    eng = _opened(make_engine)
    assert eng.delay(minutes) is False
    assert "update_estimated_time" not in gateway.names()
    assert _state(eng) is DetailState.OPEN


def test_delay_available_on_complete_tab(make_engine, gateway):
    eng = _opened(make_engine, "o4", tab=Tab.COMPLETE)
    assert eng.delay(5) is True
    assert ("update_estimated_time", "o4", 5) in gateway.calls


def test_mutation_failure_stays_open_with_server_message(make_engine, gateway):
    eng = _opened(make_engine)
    gateway.fail["update_status"] = GatewayError("HTTP 409", status=409, server_message="Order already accepted")

    assert eng.accept() is False
    s = eng.snapshot()
    assert s.detail.state is DetailState.OPEN
    assert s.detail.detail is not None
    assert Action.ACCEPT in s.detail.actions
    assert s.error == "Order already accepted"

    # retry works once the server agrees
    del gateway.fail["update_status"]
    assert eng.accept() is True
    assert eng.snapshot().error is None


def test_mutation_failure_uses_action_fallback(make_engine, gateway):
    eng = _opened(make_engine, "o3", tab=Tab.IN_PROGRESS)
    gateway.fail["update_status"] = GatewayError("connection reset")
    assert eng.ready() is False
    assert eng.snapshot().error == "Failed to mark ready"


def test_refetch_failure_after_mutation_reopens(make_engine, gateway):
    eng = _opened(make_engine)
    gateway.fail["fetch_order"] = GatewayError("timeout")
    assert eng.accept() is False
    assert _state(eng) is DetailState.OPEN
    assert eng.snapshot().error == "Failed to accept order"


def test_actions_not_offered_on_tab_are_blocked(make_engine, gateway):
    eng = _opened(make_engine)
    assert eng.ready() is False
    assert eng.cancel() is False
    assert "update_status" not in gateway.names()


def test_actions_need_an_open_detail(make_engine, gateway):
    eng = make_engine()
    eng.refresh()
    assert eng.accept() is False
    assert eng.delay(10) is False
    assert eng.print_receipt() is False
    assert "update_status" not in gateway.names()


def test_print_hands_detail_to_printer(make_engine):
    printer = FakePrinter()
    eng = _opened(make_engine, printer=printer)
    assert eng.print_receipt() is True
    assert [d.id for d in printer.printed] == ["o1"]
    assert _state(eng) is DetailState.OPEN


def test_print_without_printer_reports_error(make_engine):
    eng = _opened(make_engine)
    assert eng.print_receipt() is False
    s = eng.snapshot()
    assert s.error == "Failed to print"
    assert s.detail.state is DetailState.OPEN


def test_tab_switch_closes_open_detail(make_engine, gateway):
    eng = _opened(make_engine)
    eng.set_tab("in-progress")

    s = eng.snapshot()
    assert s.detail.state is DetailState.CLOSED
    assert s.detail.detail is None
    assert s.detail.actions == ()

    # a pending order cannot jump straight to completed
    assert eng.ready() is False
    assert "update_status" not in gateway.names()
    assert gateway.orders["o1"].status == "pending"


def test_detail_closed_while_loading_stays_closed(make_engine, gateway):
    eng = make_engine()
    gateway.hooks["fetch_order"] = lambda: eng.set_tab(Tab.COMPLETE)

    assert eng.select_order("o1") is False
    s = eng.snapshot()
    assert s.tab is Tab.COMPLETE
    assert s.detail.state is DetailState.CLOSED
    assert s.detail.detail is None


def test_status_action_without_target_is_blocked(make_engine, gateway, monkeypatch):
    monkeypatch.setitem(state_machine.ACTIONS, Tab.NEW, (ActionSpec(Action.ACCEPT, None),))
    eng = _opened(make_engine)
    assert eng.accept() is False
    assert "update_status" not in gateway.names()
    assert _state(eng) is DetailState.OPEN
