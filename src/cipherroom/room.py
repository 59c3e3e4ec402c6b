"""
CipherRoom - Conversation coordinator.

ChatRoom owns one conversation: its message store, session lock and relay
link. User actions (submit a code, send a note, lock, clear, import) enter
here and flow through the codec, the store and the relay in that order.
Hosts register a listener to redraw whenever the log or the lock changes.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from . import backup, crypto
from .constants import (
    DEFAULT_SENDER,
    DEMO_CODE,
    DEMO_HINTS,
    DEMO_PARTNER,
    DEMO_SENDER,
    LOCK_DEFAULT_REASON,
    LOCK_NEED_CODE,
    LOCKED_NO_CODE_TEXT,
    LOCKED_WRONG_CODE_TEXT,
    PEER_SENDER,
)
from .errors import CryptoError, DecryptionFailed
from .message import Envelope, MessageStore
from .relay import RelaySync
from .session import SessionLock
from .utils import cipher_preview, format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class RenderedMessage:
    """View of one envelope under the current lock state."""

    id: str
    sender: str
    time: str
    body: str
    unlocked: bool
    cipher_preview: str


@dataclass
class SendResult:
    """Outcome of sending a note."""

    envelope: Optional[Envelope] = None
    relayed: bool = False
    status: str = ""

    @property
    def stored(self) -> bool:
        return self.envelope is not None


class ChatRoom:
    """Coordinates the codec, store, lock and relay for one conversation."""

    def __init__(
        self,
        store: MessageStore,
        lock: SessionLock,
        relay: Optional[RelaySync] = None,
        sender_label: str = DEFAULT_SENDER,
    ):
        """
        Initialize a conversation.

        Args:
            store: Envelope log (already loaded)
            lock: Session lock holding the shared code
            relay: Relay link (optional, notes stay local without one)
            sender_label: Label stamped on notes sealed here
        """
        self.store = store
        self.lock_state = lock
        self.relay = relay
        self.sender_label = sender_label
        self._listeners: List[Callable[[], None]] = []

        lock.add_listener(lambda _unlocked: self._notify())
        if relay is not None:
            relay.add_change_listener(self._notify)

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a redraw callback."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Redraw listener error: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lock

    def submit_code(self, code: str) -> bool:
        """Unlock with an explicitly submitted code."""
        return self.lock_state.unlock(code)

    def lock(self, reason: str = LOCK_DEFAULT_REASON) -> None:
        """Policy hook for hosts: focus loss, visibility loss, lock button."""
        self.lock_state.lock(reason)

    # ------------------------------------------------------------------
    # Sending

    async def send_text(self, text: str, typed_code: str = "") -> SendResult:
        """
        Seal a note, store it, and forward it to the relay.

        With no code set, a typed code counts as submitting it. The note is
        stored locally whether or not the relay is reachable.
        """
        body = (text or "").strip()
        if not body:
            return SendResult()

        code = self.lock_state.resolve_for_send(typed_code)
        if code is None:
            return SendResult(status=LOCK_NEED_CODE)

        try:
            envelope = await crypto.seal_async(body, code, self.sender_label)
        except CryptoError as e:
            logger.error(f"Unable to seal note: {e}")
            return SendResult(status=e.message)

        self.store.append(envelope)
        relayed = False
        if self.relay is not None:
            relayed = await self.relay.send(envelope)
        self._notify()
        return SendResult(envelope=envelope, relayed=relayed)

    async def seed_demo(self) -> Optional[Envelope]:
        """Seal an introductory note with the demo code when the log is empty."""
        if len(self.store):
            return None
        intro = (
            f'This demo message is encrypted. Use code "{DEMO_CODE}" to unlock it.\n\n'
            + random.choice(DEMO_HINTS)
        )
        envelope = await crypto.seal_async(intro, DEMO_CODE, DEMO_SENDER)
        self.store.append(envelope)
        self._notify()
        return envelope

    async def add_demo_message(self) -> Envelope:
        """Seal a hint from a pretend partner with the current or demo code."""
        code = self.lock_state.passphrase or DEMO_CODE
        envelope = await crypto.seal_async(random.choice(DEMO_HINTS), code, DEMO_PARTNER)
        self.store.append(envelope)
        self._notify()
        return envelope

    # ------------------------------------------------------------------
    # Rendering

    def render(self) -> List[RenderedMessage]:
        """
        Open every envelope with the current code.

        Reads one snapshot of the log and the lock up front; envelopes
        arriving meanwhile show up on the next render. An empty list means
        the host shows its "no messages" placeholder.
        """
        envelopes = self.store.snapshot()
        passphrase = self.lock_state.passphrase
        cache = self.lock_state.key_cache
        return [self._render_one(envelope, passphrase, cache) for envelope in envelopes]

    async def render_async(self) -> List[RenderedMessage]:
        """render() with the decryption work kept off the event loop."""
        envelopes = self.store.snapshot()
        passphrase = self.lock_state.passphrase
        cache = self.lock_state.key_cache
        rendered = []
        for envelope in envelopes:
            if passphrase is None:
                rendered.append(self._locked_view(envelope, LOCKED_NO_CODE_TEXT))
                continue
            try:
                text = await crypto.open_async(envelope, passphrase, cache)
                rendered.append(self._unlocked_view(envelope, text))
            except DecryptionFailed:
                rendered.append(self._locked_view(envelope, LOCKED_WRONG_CODE_TEXT))
        return rendered

    def _render_one(self, envelope: Envelope, passphrase: Optional[str], cache) -> RenderedMessage:
        if passphrase is None:
            return self._locked_view(envelope, LOCKED_NO_CODE_TEXT)
        try:
            text = crypto.open_envelope(envelope, passphrase, cache)
        except DecryptionFailed:
            return self._locked_view(envelope, LOCKED_WRONG_CODE_TEXT)
        return self._unlocked_view(envelope, text)

    @staticmethod
    def _unlocked_view(envelope: Envelope, text: str) -> RenderedMessage:
        return RenderedMessage(
            id=envelope.id,
            sender=envelope.sender or PEER_SENDER,
            time=format_timestamp(envelope.at),
            body=text,
            unlocked=True,
            cipher_preview=cipher_preview(envelope.ciphertext),
        )

    @staticmethod
    def _locked_view(envelope: Envelope, body: str) -> RenderedMessage:
        return RenderedMessage(
            id=envelope.id,
            sender=envelope.sender or PEER_SENDER,
            time=format_timestamp(envelope.at),
            body=body,
            unlocked=False,
            cipher_preview=cipher_preview(envelope.ciphertext),
        )

    # ------------------------------------------------------------------
    # Log management

    def clear(self) -> None:
        """Delete every local envelope. Irreversible."""
        self.store.clear()
        self._notify()

    def export_log(self) -> str:
        return backup.export_log(self.store)

    def import_log(self, payload: str) -> int:
        """Replace the log with an export. Raises ImportFailed if invalid."""
        count = backup.import_log(self.store, payload)
        self._notify()
        return count
