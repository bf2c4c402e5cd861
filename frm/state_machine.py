"""State machine for the draft reaper's lifecycle.

The reaper alternates between waiting and working:

- ``idle``: sleeping until the next pass
- ``scanning``: listing drafts past the maximum age
- ``deleting``: removing the drafts found
- ``stopped``: cancelled; terminal

Usage:
    >>> sm = ReaperStateMachine()
    >>> sm.state
    <ReaperState.IDLE: 'idle'>
    >>> sm.transition_to(ReaperState.SCANNING)
    >>> sm.can_transition_to(ReaperState.DELETING)
    True
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Set


class ReaperState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DELETING = "deleting"
    STOPPED = "stopped"


class InvalidStateTransitionError(Exception):
    """Raised when attempting a transition the reaper lifecycle does not allow.

    Attributes:
        current_state: The state before the attempted transition
        target_state: The state that was attempted
    """

    def __init__(self, current_state: ReaperState, target_state: ReaperState, message: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


VALID_TRANSITIONS: Dict[ReaperState, Set[ReaperState]] = {
    ReaperState.IDLE: {ReaperState.SCANNING, ReaperState.STOPPED},
    ReaperState.SCANNING: {ReaperState.DELETING, ReaperState.IDLE, ReaperState.STOPPED},
    ReaperState.DELETING: {ReaperState.IDLE, ReaperState.STOPPED},
    # Terminal
    ReaperState.STOPPED: set(),
}


@dataclass
class ReaperStateMachine:
    """Tracks and enforces the reaper's current state.

    Examples:
        >>> sm = ReaperStateMachine()
        >>> sm.transition_to(ReaperState.STOPPED)
        >>> sm.is_terminal()
        True
        >>> sm.can_transition_to(ReaperState.IDLE)
        False
    """

    state: ReaperState = ReaperState.IDLE

    def can_transition_to(self, target_state: ReaperState) -> bool:
        return target_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, target_state: ReaperState) -> None:
        """Move to ``target_state``.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target_state):
            raise InvalidStateTransitionError(
                current_state=self.state,
                target_state=target_state,
                message=(
                    f"Invalid state transition: cannot transition from "
                    f"'{self.state.value}' to '{target_state.value}'. "
                    f"Valid transitions from '{self.state.value}' are: "
                    f"{', '.join(sorted(s.value for s in VALID_TRANSITIONS[self.state]))}"
                    if VALID_TRANSITIONS[self.state]
                    else f"Invalid state transition: '{self.state.value}' is a terminal state, "
                    f"no transitions are allowed."
                ),
            )
        self.state = target_state

    def is_terminal(self) -> bool:
        return len(VALID_TRANSITIONS[self.state]) == 0


__all__ = [
    "ReaperState",
    "ReaperStateMachine",
    "InvalidStateTransitionError",
    "VALID_TRANSITIONS",
]
