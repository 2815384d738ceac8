# src/livequeue/core/orders/state_machine.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.livequeue.core.models.enums import Action, DetailState, OrderStatus, Tab

DELAY_CHOICES: tuple[int, ...] = (5, 10, 15, 20, 25, 30, 35, 40, 50)


@dataclass(frozen=True)
class ActionSpec:
    action: Action
    target_status: Optional[OrderStatus]
    confirm: bool = False
    failure_message: str = "Failed to update order"
    prompt: str = ""


_ACCEPT = ActionSpec(Action.ACCEPT, OrderStatus.PROCESSING, failure_message="Failed to accept order")
_REJECT = ActionSpec(
    Action.REJECT,
    OrderStatus.CANCELLED,
    confirm=True,
    failure_message="Failed to reject order",
    prompt="Are you sure you want to reject this order?",
)
_READY = ActionSpec(Action.READY, OrderStatus.COMPLETED, failure_message="Failed to mark ready")
_CANCEL = ActionSpec(
    Action.CANCEL,
    OrderStatus.CANCELLED,
    confirm=True,
    failure_message="Failed to cancel order",
    prompt="Are you sure you want to cancel this order?",
)
_DELAY = ActionSpec(Action.DELAY, None, failure_message="Failed to update order")
_PRINT = ActionSpec(Action.PRINT, None, failure_message="Failed to print")

# delay and print are offered on every tab
ACTIONS: dict[Tab, tuple[ActionSpec, ...]] = {
    Tab.NEW: (_ACCEPT, _REJECT, _DELAY, _PRINT),
    Tab.IN_PROGRESS: (_READY, _CANCEL, _DELAY, _PRINT),
    Tab.COMPLETE: (_DELAY, _PRINT),
}


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: str = ""
    spec: Optional[ActionSpec] = None


def available_actions(tab: Tab) -> tuple[Action, ...]:
    return tuple(s.action for s in ACTIONS[Tab(tab)])


def resolve_action(*, tab: Tab, state: DetailState, action: Action) -> Decision:
    """
    Gate an action button press.
    - only an Open detail accepts actions (no double submit while Mutating)
    - the action must be offered on the current tab
    """
    st = DetailState(state)
    if st is not DetailState.OPEN:
        return Decision(False, f"detail is {st.value}, expected open")

    for spec in ACTIONS[Tab(tab)]:
        if spec.action is Action(action):
            return Decision(True, "ok", spec)

    return Decision(False, f"{Action(action).value} is not available on tab {Tab(tab).value}")


def validate_delay(minutes: int, choices: tuple[int, ...] = DELAY_CHOICES) -> Decision:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes not in choices:
        return Decision(False, f"delay must be one of {tuple(choices)}, got {minutes!r}")
    return Decision(True, "ok", _DELAY)


def delayed_eta(current: Optional[int], minutes: int) -> int:
    """Absolute replacement value sent to the server, not a delta."""
    return int(current or 0) + int(minutes)


# Closed -> Loading only via select; Open -> Closed always via close.
_TRANSITIONS: dict[DetailState, frozenset[DetailState]] = {
    DetailState.CLOSED: frozenset({DetailState.LOADING}),
    DetailState.LOADING: frozenset({DetailState.OPEN, DetailState.CLOSED}),
    DetailState.OPEN: frozenset({DetailState.MUTATING, DetailState.CLOSED}),
    DetailState.MUTATING: frozenset({DetailState.LOADING, DetailState.OPEN}),
}


def can_transition(current: DetailState, target: DetailState) -> bool:
    return DetailState(target) in _TRANSITIONS[DetailState(current)]
