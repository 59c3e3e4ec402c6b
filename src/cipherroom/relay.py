"""
CipherRoom - Relay synchronization.

Ships locally sealed envelopes to a relay room and merges envelopes received
from the room into the local message store. The relay link is driven by
RelayStateMachine; this module owns the reconnect policy (exponential backoff
capped at 30 seconds) whatever the transport underneath offers.

Known gap: there is no outbound queue. Envelopes sealed while the link is
down stay in the local log but are never delivered to peers later.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .connection_fsm import RelayEvent, RelayState, RelayStateMachine
from .constants import (
    RECONNECT_BASE_DELAY,
    RECONNECT_JITTER,
    RECONNECT_MAX_DELAY,
    RECONNECT_MAX_EXPONENT,
    RELAY_SLOT,
    STATUS_CONNECTED,
    STATUS_CONNECTING,
    STATUS_DISCONNECTED,
    STATUS_MISSING_TARGET,
    STATUS_RECONNECTING,
    STATUS_RELAY_ERROR,
)
from .errors import InvalidConfiguration, PersistenceFailure
from .message import Envelope, MessageStore

logger = logging.getLogger(__name__)


@dataclass
class TransportHandlers:
    """Callbacks a transport invokes for one connection."""

    on_message: Callable[[Any], None]
    on_close: Callable[[Optional[BaseException]], None]
    on_reconnecting: Callable[[], None]
    on_reconnected: Callable[[], None]


class RelayConnection(ABC):
    """A live connection to a relay room."""

    @abstractmethod
    async def send(self, room: str, payload: Dict[str, Any]) -> None:
        """Deliver one envelope payload to the room. Raises if not connected."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class RelayTransport(ABC):
    """Opens connections to a relay. Implementations raise on failure."""

    @abstractmethod
    async def open(self, address: str, room: str, handlers: TransportHandlers) -> RelayConnection:
        """Connect to the room at address and start delivering events to handlers."""


def backoff_delay(
    attempts: int,
    base: float = RECONNECT_BASE_DELAY,
    maximum: float = RECONNECT_MAX_DELAY,
    max_exponent: int = RECONNECT_MAX_EXPONENT,
    jitter: float = RECONNECT_JITTER,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Delay before the next reconnect attempt, in seconds.

    min(maximum, base * 2 ** min(attempts, max_exponent)), plus up to
    jitter * delay of random extra, never above maximum.
    """
    delay = min(maximum, base * 2 ** min(max(attempts, 0), max_exponent))
    if jitter > 0:
        delay = min(maximum, delay + delay * jitter * rng())
    return delay


class RelaySync:
    """
    Relay link for one conversation.

    Owns the live connection handle and the pending reconnect timer; both are
    torn down before new ones are created. Every transport callback is bound
    to the connection generation it was created for, so events from a stale
    connection are ignored.
    """

    def __init__(
        self,
        transport: RelayTransport,
        store: MessageStore,
        storage=None,
        base_delay: float = RECONNECT_BASE_DELAY,
        max_delay: float = RECONNECT_MAX_DELAY,
        jitter: float = RECONNECT_JITTER,
    ):
        """
        Initialize relay sync (starts DISCONNECTED).

        Args:
            transport: Transport used to open relay connections
            store: Message store receiving inbound envelopes
            storage: Key-value slots for the relay configuration (optional)
            base_delay: First reconnect delay in seconds
            max_delay: Reconnect delay cap in seconds
            jitter: Random extra delay as a fraction of the delay
        """
        self.transport = transport
        self.store = store
        self.storage = storage
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter

        self.fsm = RelayStateMachine()
        self.relay_address = ""
        self.room = ""
        self.reconnect_attempts = 0
        self.should_reconnect = False
        self.status_label = STATUS_DISCONNECTED
        self.status_variant = "ghost"

        self._connection: Optional[RelayConnection] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._generation = 0

        self._status_listeners: List[Callable[[str, str], None]] = []
        self._change_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Observers

    @property
    def state(self) -> RelayState:
        return self.fsm.get_state()

    @property
    def has_pending_retry(self) -> bool:
        return self._timer is not None

    def add_status_listener(self, callback: Callable[[str, str], None]) -> None:
        """Register a callback receiving (label, variant) on every status change."""
        self._status_listeners.append(callback)

    def add_change_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after an inbound envelope was stored."""
        self._change_listeners.append(callback)

    def _set_status(self, label: str, variant: str = "ghost") -> None:
        self.status_label = label
        self.status_variant = variant
        for callback in list(self._status_listeners):
            try:
                callback(label, variant)
            except Exception as e:
                logger.error(f"Status listener error: {e}", exc_info=True)

    def _notify_change(self) -> None:
        for callback in list(self._change_listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Change listener error: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Relay configuration slot

    def load_config(self) -> Tuple[str, str]:
        """Read the saved relay address and room, if any."""
        if self.storage is None:
            return self.relay_address, self.room
        try:
            data = self.storage.read(RELAY_SLOT)
        except PersistenceFailure as e:
            logger.warning(f"Unable to load relay config: {e}")
            return self.relay_address, self.room

        if isinstance(data, dict):
            self.relay_address = str(data.get("relayAddress") or "")
            self.room = str(data.get("room") or "")
        return self.relay_address, self.room

    def save_config(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.write(RELAY_SLOT, {"relayAddress": self.relay_address, "room": self.room})
        except PersistenceFailure as e:
            logger.warning(f"Unable to save relay config: {e}")

    # ------------------------------------------------------------------
    # Connection lifecycle

    async def connect(self, relay_address: str, room: str) -> bool:
        """
        Connect to a relay room.

        Missing address or room is reported through the status label and
        no connection is attempted.

        Returns:
            True if the connection is open
        """
        address = (relay_address or "").strip().rstrip("/")
        room = (room or "").strip()
        if not address or not room:
            error = InvalidConfiguration(details={"relay_address": address, "room": room})
            logger.info(f"Not connecting: {error}")
            self._set_status(STATUS_MISSING_TARGET, "ghost")
            return False

        self.relay_address = address
        self.room = room
        self.should_reconnect = True
        self.reconnect_attempts = 0
        self.save_config()
        return await self._attempt_connect(RelayEvent.CONNECT_REQUESTED)

    async def retry(self) -> bool:
        """Reconnect attempt fired by the backoff timer.

        Unlike connect(), this keeps the attempt counter so the backoff grows.
        """
        if not self.should_reconnect or self.state != RelayState.RECONNECTING:
            return False
        return await self._attempt_connect(RelayEvent.RETRY_FIRED)

    async def _attempt_connect(self, event: RelayEvent) -> bool:
        self._cancel_timer()
        self._generation += 1
        generation = self._generation
        await self._teardown()
        if generation != self._generation:
            return False

        if not self.fsm.transition(event):
            return False
        self._set_status(STATUS_CONNECTING, "ghost")
        logger.info(f"Connecting to relay {self.relay_address} room '{self.room}'")

        try:
            connection = await self.transport.open(
                self.relay_address, self.room, self._handlers_for(generation)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return False
            logger.warning(f"Relay connect failed: {e}")
            self.fsm.transition(RelayEvent.CONNECT_FAILED)
            self._set_status(STATUS_RELAY_ERROR, "danger")
            self.schedule_reconnect()
            return False

        if generation != self._generation:
            # Disconnected or superseded while the transport was opening
            await self._close_quietly(connection)
            return False

        self._connection = connection
        self.fsm.transition(RelayEvent.CONNECT_SUCCEEDED)
        self.reconnect_attempts = 0
        self._set_status(STATUS_CONNECTED, "ok")
        return True

    def schedule_reconnect(self) -> Optional[float]:
        """
        Arm the one-shot reconnect timer.

        Returns:
            The delay in seconds, or None when reconnecting is switched off
        """
        if not self.should_reconnect:
            return None

        delay = backoff_delay(
            self.reconnect_attempts,
            base=self.base_delay,
            maximum=self.max_delay,
            jitter=self.jitter,
        )
        self.reconnect_attempts += 1
        self._set_status(f"Reconnecting in {delay:.0f}s", "ghost")
        logger.info(f"Reconnect attempt {self.reconnect_attempts} in {delay:.1f}s")

        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_retry_timer, self._generation)
        return delay

    def _on_retry_timer(self, generation: int) -> None:
        self._timer = None
        if not self.should_reconnect or generation != self._generation:
            return
        self._retry_task = asyncio.ensure_future(self.retry())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def disconnect(self) -> None:
        """Stop the relay link and all pending retries. Safe from any state."""
        self.should_reconnect = False
        self.reconnect_attempts = 0
        self._cancel_timer()
        self._generation += 1
        await self._teardown()
        self.fsm.transition(RelayEvent.DISCONNECT_REQUESTED)
        self._set_status(STATUS_DISCONNECTED, "ghost")

    async def _teardown(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close_quietly(connection)

    async def _close_quietly(self, connection: RelayConnection) -> None:
        try:
            await connection.close()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Error closing relay connection: {e}")

    # ------------------------------------------------------------------
    # Transport events

    def _handlers_for(self, generation: int) -> TransportHandlers:
        def current() -> bool:
            return generation == self._generation

        def on_message(payload: Any) -> None:
            if current():
                self.on_incoming(payload)

        def on_close(error: Optional[BaseException] = None) -> None:
            if current():
                self._on_transport_close(error)

        def on_reconnecting() -> None:
            if current() and self.fsm.transition(RelayEvent.TRANSPORT_RECONNECTING):
                self._set_status(STATUS_RECONNECTING, "ghost")

        def on_reconnected() -> None:
            if current() and self.fsm.transition(RelayEvent.TRANSPORT_RECONNECTED):
                self._cancel_timer()
                self.reconnect_attempts = 0
                self._set_status(STATUS_CONNECTED, "ok")

        return TransportHandlers(
            on_message=on_message,
            on_close=on_close,
            on_reconnecting=on_reconnecting,
            on_reconnected=on_reconnected,
        )

    def _on_transport_close(self, error: Optional[BaseException]) -> None:
        if self.state not in (RelayState.CONNECTED, RelayState.RECONNECTING):
            return
        if error is not None:
            logger.warning(f"Relay connection closed: {error}")
        else:
            logger.info("Relay connection closed")

        self._connection = None
        self.fsm.transition(RelayEvent.CONNECTION_LOST)
        self._set_status(STATUS_DISCONNECTED, "ghost")
        if self.should_reconnect:
            self.schedule_reconnect()

    def on_incoming(self, payload: Any) -> bool:
        """
        Merge one payload received from the room.

        Duplicates and malformed payloads are dropped without touching the
        connection.

        Returns:
            True if a new envelope was stored
        """
        inserted = self.store.merge(payload)
        if inserted:
            self._notify_change()
        return inserted

    async def send(self, envelope: Envelope) -> bool:
        """
        Forward a locally sealed envelope to the room.

        Silently skipped unless connected with a room configured. Transport
        errors are logged; the envelope is not retried.

        Returns:
            True if the transport accepted the envelope
        """
        connection = self._connection
        if not self.fsm.is_connected() or not self.room or connection is None:
            logger.debug(f"Relay not connected, envelope {envelope.id} kept local only")
            return False

        try:
            await connection.send(self.room, envelope.to_dict())
            logger.debug(f"Sent envelope {envelope.id} to room '{self.room}'")
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Relay send failed: {e}")
            return False
