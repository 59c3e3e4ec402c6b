"""
CipherRoom - Session lock.

Holds the shared code while the conversation is unlocked. The lock never
decides on its own when to re-lock: the host (terminal UI, window manager
hooks) calls lock() on focus loss, visibility loss or an explicit request.
"""

import logging
from typing import Callable, List, Optional

from .constants import LOCK_DEFAULT_REASON, LOCK_UNLOCKED_LABEL
from .crypto import KeyCache

logger = logging.getLogger(__name__)


class SessionLock:
    """Unlocked/locked state plus the reason shown while locked."""

    def __init__(self, cache_keys: bool = True):
        """
        Initialize session lock (starts locked).

        Args:
            cache_keys: Keep derived keys for the lifetime of each unlock
        """
        self._passphrase: Optional[str] = None
        self.reason = LOCK_DEFAULT_REASON
        self.typed_code = ""  # transient input buffer holding a typed code
        self.key_cache: Optional[KeyCache] = KeyCache() if cache_keys else None
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def passphrase(self) -> Optional[str]:
        return self._passphrase

    @property
    def label(self) -> str:
        return LOCK_UNLOCKED_LABEL if self.is_unlocked() else self.reason

    def is_unlocked(self) -> bool:
        return self._passphrase is not None

    def add_listener(self, callback: Callable[[bool], None]) -> None:
        """Register a callback receiving the new unlocked flag after each change."""
        self._listeners.append(callback)

    def unlock(self, passphrase: str) -> bool:
        """
        Store the shared code and mark the session unlocked.

        Returns:
            False if the code is empty (session unchanged)
        """
        code = (passphrase or "").strip()
        if not code:
            return False

        if self._passphrase != code:
            self._reset_key_cache()
        self._passphrase = code
        logger.info("Session unlocked")
        self._notify()
        return True

    def lock(self, reason: str = LOCK_DEFAULT_REASON) -> None:
        """Forget the shared code, any typed code, and all cached keys."""
        self._passphrase = None
        self.reason = reason
        self.typed_code = ""
        self._reset_key_cache()
        logger.info(f"Session locked: {reason}")
        self._notify()

    def _reset_key_cache(self) -> None:
        # Replaced, not only cleared: a render still running in a worker
        # thread keeps filling the old object.
        if self.key_cache is not None:
            self.key_cache.clear()
            self.key_cache = KeyCache()

    def resolve_for_send(self, typed_code: str = "") -> Optional[str]:
        """
        Code to seal an outgoing note with.

        Sending while locked with a typed code counts as submitting that code.
        """
        if self._passphrase is not None:
            return self._passphrase
        if self.unlock(typed_code):
            return self._passphrase
        return None

    def _notify(self) -> None:
        unlocked = self.is_unlocked()
        for callback in list(self._listeners):
            try:
                callback(unlocked)
            except Exception as e:
                logger.error(f"Lock listener error: {e}", exc_info=True)
