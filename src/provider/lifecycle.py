"""Lifecycle state machine for an environment.

Bootstrap and destroy are long sequences of remote calls; the guard makes
sure two of them never run against the same environment at once. The state
field is swapped under its own lock, separate from the config lock, and no
remote call happens while it is held.
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from common import LifecycleError

logger = logging.getLogger(__name__)


class State(Enum):
    CONSTRUCTED = 'constructed'
    BOOTSTRAPPING = 'bootstrapping'
    BOOTSTRAPPED = 'bootstrapped'
    DESTROYING = 'destroying'
    DESTROYED = 'destroyed'


# operation -> (states it may start from, state while running, state on success)
TRANSITIONS: dict[str, tuple[frozenset[State], State, State]] = {
    'bootstrap': (
        frozenset({State.CONSTRUCTED}),
        State.BOOTSTRAPPING,
        State.BOOTSTRAPPED,
    ),
    'destroy': (
        frozenset({State.CONSTRUCTED, State.BOOTSTRAPPED, State.DESTROYED}),
        State.DESTROYING,
        State.DESTROYED,
    ),
}


class LifecycleGuard:
    """Compare-and-swap guarded lifecycle state."""

    def __init__(self, state: State = State.CONSTRUCTED):
        self._lock = threading.Lock()
        self._state = state

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    def _swap(self, operation: str, allowed: frozenset[State], new: State) -> State:
        with self._lock:
            current = self._state
            if current not in allowed:
                raise LifecycleError(f"cannot {operation} environment in state {current.value}")
            self._state = new
            return current

    def _set(self, state: State) -> None:
        with self._lock:
            self._state = state

    @contextmanager
    def transition(self, operation: str) -> Iterator[None]:
        """Hold the transitional state for the duration of an operation.

        On success the state moves forward; on failure it returns to where
        the operation started.

        Raises:
            LifecycleError: If the operation is not allowed right now
        """
        allowed, running, done = TRANSITIONS[operation]
        previous = self._swap(operation, allowed, running)
        logger.debug(f"{operation}: {previous.value} -> {running.value}")
        try:
            yield
        except BaseException:
            self._set(previous)
            raise
        self._set(done)
