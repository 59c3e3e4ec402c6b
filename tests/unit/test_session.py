"""
Tests for the session lock.
"""

from cipherroom import crypto
from cipherroom.constants import LOCK_DEFAULT_REASON, LOCK_FOCUS_REASON, LOCK_UNLOCKED_LABEL
from cipherroom.session import SessionLock


class TestSessionLock:
    """Tests for SessionLock."""

    def test_starts_locked(self):
        lock = SessionLock()

        assert not lock.is_unlocked()
        assert lock.passphrase is None
        assert lock.label == LOCK_DEFAULT_REASON

    def test_unlock(self):
        lock = SessionLock()

        assert lock.unlock("  abc123 ") is True
        assert lock.is_unlocked()
        assert lock.passphrase == "abc123"
        assert lock.label == LOCK_UNLOCKED_LABEL

    def test_empty_code_is_ignored(self):
        lock = SessionLock()

        assert lock.unlock("") is False
        assert lock.unlock("   ") is False
        assert not lock.is_unlocked()

    def test_lock_forgets_everything(self):
        lock = SessionLock()
        lock.unlock("abc123")
        lock.typed_code = "abc"
        envelope = crypto.seal("hello", "abc123")
        crypto.open_envelope(envelope, lock.passphrase, lock.key_cache)
        assert len(lock.key_cache) == 1

        lock.lock(LOCK_FOCUS_REASON)

        assert lock.passphrase is None
        assert lock.typed_code == ""
        assert len(lock.key_cache) == 0
        assert lock.label == LOCK_FOCUS_REASON

    def test_lock_replaces_key_cache(self):
        """Test that a cache still held by an in-flight render is detached."""
        lock = SessionLock()
        lock.unlock("abc123")
        held = lock.key_cache

        lock.lock()
        crypto.open_envelope(crypto.seal("x", "abc123"), "abc123", held)

        assert lock.key_cache is not held
        assert len(lock.key_cache) == 0

    def test_lock_default_reason(self):
        lock = SessionLock()
        lock.lock("something else")
        lock.lock()

        assert lock.reason == LOCK_DEFAULT_REASON

    def test_changing_code_clears_cache(self):
        lock = SessionLock()
        lock.unlock("abc123")
        crypto.open_envelope(crypto.seal("x", "abc123"), "abc123", lock.key_cache)

        lock.unlock("abc123")
        assert len(lock.key_cache) == 1

        lock.unlock("other")
        assert len(lock.key_cache) == 0

    def test_without_key_cache(self):
        lock = SessionLock(cache_keys=False)
        lock.unlock("abc123")
        lock.lock()

        assert lock.key_cache is None

    def test_listeners(self):
        lock = SessionLock()
        seen = []
        lock.add_listener(seen.append)

        lock.unlock("abc123")
        lock.lock()

        assert seen == [True, False]

    def test_listener_error_does_not_break_lock(self):
        lock = SessionLock()

        def broken(_unlocked):
            raise RuntimeError("boom")

        lock.add_listener(broken)
        lock.unlock("abc123")
        lock.lock()

        assert not lock.is_unlocked()

    def test_resolve_for_send_uses_current_code(self):
        lock = SessionLock()
        lock.unlock("abc123")

        assert lock.resolve_for_send("ignored") == "abc123"

    def test_resolve_for_send_adopts_typed_code(self):
        lock = SessionLock()

        assert lock.resolve_for_send("typed") == "typed"
        assert lock.is_unlocked()

    def test_resolve_for_send_without_code(self):
        lock = SessionLock()

        assert lock.resolve_for_send("") is None
        assert not lock.is_unlocked()
