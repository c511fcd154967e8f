import logging
from enum import Enum
from typing import List, Tuple

from planwatch.spec.events import (
    ChangeSummary,
    Event,
    Hook,
    MessageType,
    Operation,
    OperationStart,
    PlannedChange,
    RefreshStart,
)

logger = logging.getLogger(__name__)


class ViewState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    PLANNING = "planning"
    APPLYING = "applying"
    SUMMARIZING = "summarizing"


def _is_refresh_start(event: Event) -> bool:
    return isinstance(event, Hook) and isinstance(event.payload, RefreshStart)


def _is_apply_start(event: Event) -> bool:
    # Ephemeral operations reuse OperationStart but happen while planning
    return (
        isinstance(event, Hook)
        and isinstance(event.payload, OperationStart)
        and event.type is MessageType.APPLY_START
    )


def _is_apply_summary(event: Event) -> bool:
    return isinstance(event, ChangeSummary) and event.phase is Operation.APPLY


def next_state(state: ViewState, event: Event) -> Tuple[ViewState, bool]:
    """
    Computes the phase that follows `state` after `event`.

    Phases only ever move forward, and any phase may jump straight to
    SUMMARIZING. Returns the new phase and whether it differs from `state`.
    """
    target = state

    if state is ViewState.IDLE:
        if _is_refresh_start(event):
            target = ViewState.REFRESHING
        elif isinstance(event, PlannedChange):
            target = ViewState.PLANNING
        elif _is_apply_start(event):
            target = ViewState.APPLYING
        elif _is_apply_summary(event):
            target = ViewState.SUMMARIZING
    elif state is ViewState.REFRESHING:
        if isinstance(event, PlannedChange):
            target = ViewState.PLANNING
        elif _is_apply_summary(event):
            target = ViewState.SUMMARIZING
    elif state is ViewState.PLANNING:
        if _is_apply_start(event):
            target = ViewState.APPLYING
        elif _is_apply_summary(event):
            target = ViewState.SUMMARIZING
    elif state is ViewState.APPLYING:
        # Any summary seen while applying closes the run, destroy included
        if isinstance(event, ChangeSummary):
            target = ViewState.SUMMARIZING

    return target, target is not state


class ViewStateMachine:
    def __init__(self):
        self.current = ViewState.IDLE
        self._visited: List[ViewState] = [ViewState.IDLE]

    @property
    def visited(self) -> Tuple[ViewState, ...]:
        return tuple(self._visited)

    def advance(self, event: Event) -> bool:
        state, changed = next_state(self.current, event)
        if changed:
            logger.info("Phase changed: %s -> %s", self.current.value, state.value)
            self.current = state
            self._visited.append(state)
        return changed
