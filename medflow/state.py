"""Reschedule workflow states and the allowed transitions between them.

Flow:
    date-selection -> loading -> time-selection -> form-input
        -> loading -> success | error

Every state can be reset back to date-selection.
"""
from enum import Enum
from typing import Dict, FrozenSet


class RescheduleState(str, Enum):
    """Discrete states of the reschedule flow."""
    DATE_SELECTION = "date-selection"
    TIME_SELECTION = "time-selection"
    FORM_INPUT = "form-input"
    LOADING = "loading"
    ERROR = "error"
    SUCCESS = "success"


INITIAL_STATE = RescheduleState.DATE_SELECTION
TERMINAL_STATES = frozenset({RescheduleState.SUCCESS, RescheduleState.ERROR})


class InvalidTransitionError(ValueError):
    """An event was triggered in a state that does not accept it."""

    def __init__(self, current: RescheduleState, intended: RescheduleState, event: str = ""):
        label = f" on '{event}'" if event else ""
        super().__init__(f"Cannot move from {current.value} to {intended.value}{label}")
        self.current = current
        self.intended = intended
        self.event = event


# Current state -> states it may move to.
# Reset to DATE_SELECTION is allowed from everywhere and listed explicitly.
VALID_TRANSITIONS: Dict[RescheduleState, FrozenSet[RescheduleState]] = {
    RescheduleState.DATE_SELECTION: frozenset({
        RescheduleState.LOADING,
        RescheduleState.DATE_SELECTION,
    }),
    RescheduleState.LOADING: frozenset({
        RescheduleState.TIME_SELECTION,  # slots fetched (or masked with demo slots)
        RescheduleState.SUCCESS,
        RescheduleState.ERROR,
        RescheduleState.DATE_SELECTION,
    }),
    RescheduleState.TIME_SELECTION: frozenset({
        RescheduleState.FORM_INPUT,
        RescheduleState.LOADING,  # picking another date from the slot list
        RescheduleState.DATE_SELECTION,  # back, discards slots
    }),
    RescheduleState.FORM_INPUT: frozenset({
        RescheduleState.LOADING,  # confirm
        RescheduleState.TIME_SELECTION,  # back, keeps date and slots
        RescheduleState.DATE_SELECTION,
    }),
    RescheduleState.ERROR: frozenset({
        RescheduleState.DATE_SELECTION,
    }),
    RescheduleState.SUCCESS: frozenset({
        RescheduleState.DATE_SELECTION,
    }),
}


def validate_transition(current: RescheduleState, intended: RescheduleState) -> bool:
    """
    Check a transition against VALID_TRANSITIONS.

    Example:
        >>> validate_transition(RescheduleState.FORM_INPUT, RescheduleState.LOADING)
        True
        >>> validate_transition(RescheduleState.ERROR, RescheduleState.FORM_INPUT)
        False
    """
    return intended in VALID_TRANSITIONS.get(current, frozenset())
