"""
Pytest configuration and fixtures for CipherRoom tests.

Provides common fixtures, an in-process relay transport double, and test
utilities for unit and integration tests.
"""

import tempfile
import shutil
from pathlib import Path
from typing import Any, Dict, Generator, List, Tuple

import pytest

from cipherroom.errors import ErrorCode, TransportFailure
from cipherroom.message import MessageStore
from cipherroom.relay import RelayConnection, RelaySync, RelayTransport, TransportHandlers
from cipherroom.storage import MemoryStore


class FakeConnection(RelayConnection):
    """Records sent payloads; tests drive inbound events via handlers."""

    def __init__(self, handlers: TransportHandlers):
        self.handlers = handlers
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False
        self.fail_send = False

    async def send(self, room: str, payload: Dict[str, Any]) -> None:
        if self.closed or self.fail_send:
            raise TransportFailure(ErrorCode.E204_SEND_FAILED, "send refused")
        self.sent.append((room, payload))

    async def close(self) -> None:
        self.closed = True


class FakeTransport(RelayTransport):
    """Opens FakeConnections, or refuses while fail is set."""

    def __init__(self):
        self.fail = False
        self.opened: List[Tuple[str, str]] = []
        self.connections: List[FakeConnection] = []

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]

    async def open(self, address: str, room: str, handlers: TransportHandlers) -> RelayConnection:
        self.opened.append((address, room))
        if self.fail:
            raise TransportFailure(ErrorCode.E201_CONNECTION_FAILED, "connection refused")
        connection = FakeConnection(handlers)
        self.connections.append(connection)
        return connection


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path
    """
    tmp = Path(tempfile.mkdtemp(prefix="cipherroom_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def memory_storage() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def store(memory_storage) -> MessageStore:
    """Empty message store backed by memory slots."""
    message_store = MessageStore(memory_storage)
    message_store.load()
    return message_store


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def relay(fake_transport, store, memory_storage) -> RelaySync:
    """Relay sync over the fake transport."""
    return RelaySync(fake_transport, store, storage=memory_storage)


@pytest.fixture
def sample_envelope_data() -> dict:
    """
    Provide sample envelope data for testing.

    The fields are well formed but do not decrypt under any code.
    """
    return {
        "id": "a1b2c3d4-0000-4000-8000-000000000001",
        "sender": "Partner",
        "at": "2025-01-01T00:00:00+00:00",
        "salt": "AAAAAAAAAAAAAAAAAAAAAA==",
        "iv": "AAAAAAAAAAAAAAAA",
        "ciphertext": "c2VhbGVkIGJ5dGVzIGdvIGhlcmU=",
    }


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
