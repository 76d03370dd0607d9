"""
Lifecycle states of a worker version and the transitions allowed between them.
"""

import logging
from collections.abc import Callable
from enum import Enum

from sitecache.exceptions import LifecycleError

log = logging.getLogger(__name__)


class WorkerState(Enum):
    """States of a worker version."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"  # Waiting for the previous version to let go
    ACTIVATING = "activating"
    ACTIVATED = "activated"  # The only state that intercepts fetches
    REDUNDANT = "redundant"
    FAILED = "failed"


_TRANSITIONS: dict[WorkerState, set[WorkerState]] = {
    WorkerState.PARSED: {WorkerState.INSTALLING},
    WorkerState.INSTALLING: {WorkerState.INSTALLED, WorkerState.FAILED},
    WorkerState.INSTALLED: {WorkerState.ACTIVATING, WorkerState.REDUNDANT},
    WorkerState.ACTIVATING: {WorkerState.ACTIVATED},
    WorkerState.ACTIVATED: {WorkerState.REDUNDANT},
    WorkerState.REDUNDANT: set(),
    WorkerState.FAILED: set(),
}


class Lifecycle:
    """
    Tracks the state of one worker version.

    States:
    - PARSED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVATED -> REDUNDANT
    - INSTALLING -> FAILED when the static partition cannot be populated
    - INSTALLED -> REDUNDANT when a newer version replaces a waiting one
    """

    def __init__(
        self,
        version: str,
        on_change: Callable[[WorkerState, WorkerState], None] | None = None,
    ):
        self.version = version
        self._state = WorkerState.PARSED
        self._on_change = on_change

    @property
    def state(self) -> WorkerState:
        return self._state

    def can_transition(self, new_state: WorkerState) -> bool:
        return new_state in _TRANSITIONS[self._state]

    def transition(self, new_state: WorkerState) -> None:
        if not self.can_transition(new_state):
            raise LifecycleError(
                f"Worker {self.version} cannot move from "
                f"{self._state.value} to {new_state.value}."
            )
        old_state = self._state
        self._state = new_state
        log.debug(f"Worker {self.version}: {old_state.value} -> {new_state.value}")
        if self._on_change:
            self._on_change(old_state, new_state)

    def resume_activated(self) -> None:
        """Marks a parsed worker as the activated version restored from disk."""
        if self._state is not WorkerState.PARSED:
            raise LifecycleError(
                f"Only a parsed worker can be resumed; "
                f"{self.version} is {self._state.value}."
            )
        self._state = WorkerState.ACTIVATED
        log.debug(f"Worker {self.version}: resumed as activated")
