"""
Per-destination transmission status shared with the display.

The dispatcher is the only writer. Display pages read at any time, so each
status is an immutable record swapped in whole under a lock.

State machine (independent per destination):

    OFF                      disabled at startup, terminal
    INIT -> SENDING | IDLE   enabled, nothing attempted yet
    IDLE -> SENDING
    ERROR -> SENDING
    SENDING -> IDLE | ERROR  decided by the destination's success rule
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class DestinationState(Enum):
    OFF = "off"
    INIT = "init"
    IDLE = "idle"
    SENDING = "sending"
    ERROR = "error"


ALLOWED_TRANSITIONS: dict[DestinationState, frozenset[DestinationState]] = {
    DestinationState.OFF: frozenset(),
    DestinationState.INIT: frozenset({DestinationState.SENDING, DestinationState.IDLE}),
    DestinationState.IDLE: frozenset({DestinationState.SENDING}),
    DestinationState.ERROR: frozenset({DestinationState.SENDING}),
    DestinationState.SENDING: frozenset({DestinationState.IDLE, DestinationState.ERROR}),
}


@dataclass(frozen=True)
class DestinationStatus:
    """Current state plus the result codes of the last attempt."""

    state: DestinationState
    codes: tuple[int | None, int | None] = (None, None)

    def format_codes(self) -> str:
        return ", ".join("-" if c is None else str(c) for c in self.codes)


class StatusBoard:
    """
    Thread-safe registry of DestinationStatus records.

    Listeners (e.g. ScreenManager.refresh) are called after every change,
    outside the lock.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, DestinationStatus] = {}
        self._listeners: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    def register(self, name: str, enabled: bool) -> DestinationStatus:
        """Add a destination; enabled ones start in INIT, disabled ones in OFF."""
        status = DestinationStatus(
            DestinationState.INIT if enabled else DestinationState.OFF
        )
        with self._lock:
            if name in self._statuses:
                raise ValueError(f"Destination '{name}' already registered")
            self._statuses[name] = status
        self._notify()
        return status

    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._statuses

    def get(self, name: str) -> DestinationStatus:
        with self._lock:
            return self._statuses[name]

    def snapshot(self) -> dict[str, DestinationStatus]:
        """Get a copy of all statuses in registration order (thread-safe)."""
        with self._lock:
            return dict(self._statuses)

    def transition(
        self,
        name: str,
        state: DestinationState,
        codes: tuple[int | None, int | None] | None = None,
    ) -> DestinationStatus:
        """
        Move a destination to a new state.

        Codes are kept from the previous record unless given. Raises
        ValueError for transitions the state machine doesn't allow.
        """
        with self._lock:
            current = self._statuses[name]
            if state not in ALLOWED_TRANSITIONS[current.state]:
                raise ValueError(
                    f"{name}: invalid transition {current.state.name} -> {state.name}"
                )
            status = DestinationStatus(
                state=state,
                codes=current.codes if codes is None else codes,
            )
            self._statuses[name] = status
        logger.debug(f"{name}: {current.state.name} -> {state.name}")
        self._notify()
        return status

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Status listener error: {e}")
