"""
CipherRoom - Connection State Machine for the relay link.

This module implements a formal finite state machine for the relay
connection lifecycle. Every transport callback and timer firing is turned
into an event and fed through transition(), which keeps the table below the
single source of truth for the connection status.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from .constants import STATE_HISTORY_LIMIT

logger = logging.getLogger(__name__)


class RelayState(Enum):
    """Connection states for the relay link."""

    DISCONNECTED = auto()  # Idle, or stopped by the user
    CONNECTING = auto()  # Opening a connection to the relay
    CONNECTED = auto()  # Connection open, envelopes flow both ways
    RECONNECTING = auto()  # Waiting for the transport or the retry timer


class RelayEvent(Enum):
    """Events that trigger state transitions."""

    CONNECT_REQUESTED = auto()  # Connect called
    CONNECT_SUCCEEDED = auto()  # Transport opened the connection
    CONNECT_FAILED = auto()  # Transport could not open the connection
    CONNECTION_LOST = auto()  # Transport reported an unexpected close
    TRANSPORT_RECONNECTING = auto()  # Transport is retrying on its own
    TRANSPORT_RECONNECTED = auto()  # Transport recovered on its own
    RETRY_FIRED = auto()  # Reconnect timer expired
    DISCONNECT_REQUESTED = auto()  # User asked to disconnect


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: RelayState
    event: RelayEvent
    to_state: RelayState
    timestamp: float = field(default_factory=time.time)


class RelayStateMachine:
    """
    Finite state machine for the relay connection lifecycle.

    Enforces valid state transitions and tracks state history.
    DISCONNECT_REQUESTED is accepted from every state.
    """

    TRANSITIONS: Dict[RelayState, Dict[RelayEvent, RelayState]] = {
        RelayState.DISCONNECTED: {
            RelayEvent.CONNECT_REQUESTED: RelayState.CONNECTING,
            RelayEvent.DISCONNECT_REQUESTED: RelayState.DISCONNECTED,
        },
        RelayState.CONNECTING: {
            RelayEvent.CONNECT_REQUESTED: RelayState.CONNECTING,
            RelayEvent.CONNECT_SUCCEEDED: RelayState.CONNECTED,
            RelayEvent.CONNECT_FAILED: RelayState.RECONNECTING,
            RelayEvent.DISCONNECT_REQUESTED: RelayState.DISCONNECTED,
        },
        RelayState.CONNECTED: {
            RelayEvent.CONNECT_REQUESTED: RelayState.CONNECTING,
            RelayEvent.CONNECTION_LOST: RelayState.RECONNECTING,
            RelayEvent.TRANSPORT_RECONNECTING: RelayState.RECONNECTING,
            RelayEvent.DISCONNECT_REQUESTED: RelayState.DISCONNECTED,
        },
        RelayState.RECONNECTING: {
            RelayEvent.CONNECT_REQUESTED: RelayState.CONNECTING,
            RelayEvent.RETRY_FIRED: RelayState.CONNECTING,
            RelayEvent.CONNECTION_LOST: RelayState.RECONNECTING,
            RelayEvent.TRANSPORT_RECONNECTED: RelayState.CONNECTED,
            RelayEvent.DISCONNECT_REQUESTED: RelayState.DISCONNECTED,
        },
    }

    def __init__(self, initial_state: RelayState = RelayState.DISCONNECTED):
        """
        Initialize state machine.

        Args:
            initial_state: Initial state (default: DISCONNECTED)
        """
        self.current_state = initial_state
        self.previous_state: Optional[RelayState] = None
        self.state_entry_time = time.time()
        self.transition_history: List[StateTransition] = []
        self.max_history = STATE_HISTORY_LIMIT

        # Callbacks
        self.on_state_change: Optional[Callable[[RelayState, RelayState], None]] = None

        logger.debug(f"State machine initialized in state: {self.current_state.name}")

    def transition(self, event: RelayEvent) -> bool:
        """
        Attempt state transition based on event.

        Args:
            event: Event triggering transition

        Returns:
            True if transition successful, False otherwise
        """
        if not self.is_valid_transition(self.current_state, event):
            logger.warning(
                f"Invalid transition: {self.current_state.name} + "
                f"{event.name} (no valid target state)"
            )
            return False

        new_state = self.TRANSITIONS[self.current_state][event]

        old_state = self.current_state
        self.previous_state = old_state
        self.current_state = new_state
        self.state_entry_time = time.time()

        self.transition_history.append(StateTransition(old_state, event, new_state))
        if len(self.transition_history) > self.max_history:
            self.transition_history = self.transition_history[-self.max_history :]

        logger.info(f"State transition: {old_state.name} -> {new_state.name} (event: {event.name})")

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")

        return True

    def is_valid_transition(self, from_state: RelayState, event: RelayEvent) -> bool:
        """Check if a transition is valid."""
        return from_state in self.TRANSITIONS and event in self.TRANSITIONS[from_state]

    def get_state(self) -> RelayState:
        """Get current state."""
        return self.current_state

    def get_time_in_state(self) -> float:
        """Get time spent in current state (seconds)."""
        return time.time() - self.state_entry_time

    def is_connected(self) -> bool:
        return self.current_state == RelayState.CONNECTED

    def is_disconnected(self) -> bool:
        return self.current_state == RelayState.DISCONNECTED

    def get_history(self, count: int = 10) -> List[StateTransition]:
        """
        Get recent transition history.

        Args:
            count: Number of recent transitions to return
        """
        return self.transition_history[-count:]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get state machine statistics.

        Returns:
            Dictionary with statistics
        """
        event_counts: Dict[str, int] = {}
        for transition in self.transition_history:
            event_name = transition.event.name
            event_counts[event_name] = event_counts.get(event_name, 0) + 1

        return {
            "current_state": self.current_state.name,
            "previous_state": self.previous_state.name if self.previous_state else None,
            "time_in_state": self.get_time_in_state(),
            "total_transitions": len(self.transition_history),
            "event_counts": event_counts,
            "is_connected": self.is_connected(),
        }

    def __repr__(self) -> str:
        return (
            f"RelayStateMachine(state={self.current_state.name}, "
            f"time_in_state={self.get_time_in_state():.1f}s)"
        )
