"""
CipherRoom - Integration tests.

End-to-end tests for two conversations exchanging sealed notes through a
real relay server over websockets on localhost.
"""

import asyncio
import json

import aiohttp
import pytest
from aiohttp import web

from cipherroom.connection_fsm import RelayState
from cipherroom.errors import TransportFailure
from cipherroom.message import MessageStore
from cipherroom.relay import RelaySync, TransportHandlers
from cipherroom.relay_server import ROOMS_KEY, create_app
from cipherroom.room import ChatRoom
from cipherroom.session import SessionLock
from cipherroom.storage import KeyValueStore, MemoryStore
from cipherroom.transport import WebSocketRelayTransport


async def wait_until(predicate, timeout: float = 5.0) -> bool:
    """Poll until predicate() holds or the timeout passes."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.02)
    return True


async def start_relay():
    """Start the relay server on a free localhost port."""
    app = create_app()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    return app, runner, f"http://127.0.0.1:{port}"


def make_room(storage, sender_label: str):
    store = MessageStore(storage)
    store.load()
    relay = RelaySync(WebSocketRelayTransport(connect_timeout=5, heartbeat=5), store, storage=storage)
    return ChatRoom(store, SessionLock(), relay, sender_label=sender_label), relay


def members(app, room: str) -> int:
    return len(app[ROOMS_KEY].get(room, ()))


@pytest.mark.asyncio
async def test_two_parties_exchange_notes(temp_dir):
    """Test a note sealed by one party opens for the other with the same code."""
    app, runner, address = await start_relay()
    alice, alice_relay = make_room(KeyValueStore(temp_dir / "alice"), "Alice")
    bob, bob_relay = make_room(KeyValueStore(temp_dir / "bob"), "Bob")
    try:
        assert await alice_relay.connect(address, "room1")
        assert await bob_relay.connect(address, "room1")
        assert await wait_until(lambda: members(app, "room1") == 2)

        alice.submit_code("abc123")
        result = await alice.send_text("hello")
        assert result.relayed

        assert await wait_until(lambda: result.envelope.id in bob.store)

        [locked] = bob.render()
        assert not locked.unlocked

        bob.submit_code("abc123")
        [opened] = bob.render()
        assert opened.body == "hello"
        assert opened.sender == "Alice"

        # Reply travels the other way
        bob.lock_state.lock()
        reply = await bob.send_text("hi back", typed_code="abc123")
        assert await wait_until(lambda: reply.envelope.id in alice.store)
        assert [m.body for m in alice.render()] == ["hello", "hi back"]

        # Notes survive a restart of the receiving side
        restored = MessageStore(KeyValueStore(temp_dir / "bob"))
        assert [env.id for env in restored.load()] == [result.envelope.id, reply.envelope.id]
    finally:
        await alice_relay.disconnect()
        await bob_relay.disconnect()
        await runner.cleanup()


@pytest.mark.asyncio
async def test_rooms_are_isolated():
    app, runner, address = await start_relay()
    alice, alice_relay = make_room(MemoryStore(), "Alice")
    carol, carol_relay = make_room(MemoryStore(), "Carol")
    try:
        await alice_relay.connect(address, "room1")
        await carol_relay.connect(address, "room2")
        assert await wait_until(lambda: members(app, "room1") == 1 and members(app, "room2") == 1)

        await alice.send_text("only for room1", typed_code="abc123")
        await asyncio.sleep(0.2)

        assert len(carol.store) == 0
    finally:
        await alice_relay.disconnect()
        await carol_relay.disconnect()
        await runner.cleanup()


@pytest.mark.asyncio
async def test_relay_drops_malformed_frames():
    """Test the server forwards only well-formed envelopes."""
    app, runner, address = await start_relay()
    bob, bob_relay = make_room(MemoryStore(), "Bob")
    try:
        await bob_relay.connect(address, "room1")
        async with aiohttp.ClientSession() as session:
            async with session.ws_connect(f"{address}/relay?room=room1") as ws:
                assert await wait_until(lambda: members(app, "room1") == 2)
                await ws.send_str("not json")
                await ws.send_str(json.dumps({"type": "message", "id": "half"}))
                await ws.send_str(json.dumps({
                    "type": "message",
                    "id": "full",
                    "sender": "Raw",
                    "at": "2025-01-01T00:00:00+00:00",
                    "salt": "AAAAAAAAAAAAAAAAAAAAAA==",
                    "iv": "AAAAAAAAAAAAAAAA",
                    "ciphertext": "AAAA",
                }))

                assert await wait_until(lambda: "full" in bob.store)
                assert len(bob.store) == 1
    finally:
        await bob_relay.disconnect()
        await runner.cleanup()


@pytest.mark.asyncio
async def test_missing_room_is_rejected():
    app, runner, address = await start_relay()
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"{address}/relay") as response:
                assert response.status == 400
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_unreachable_relay_schedules_retry():
    _app, runner, address = await start_relay()
    await runner.cleanup()

    _room, relay = make_room(MemoryStore(), "Alice")
    try:
        assert await relay.connect(address, "room1") is False
        assert relay.state == RelayState.RECONNECTING
        assert relay.status_label == "Reconnecting in 1s"
    finally:
        await relay.disconnect()


@pytest.mark.asyncio
async def test_transport_open_failure_raises():
    _app, runner, address = await start_relay()
    await runner.cleanup()

    handlers = TransportHandlers(
        on_message=lambda payload: None,
        on_close=lambda error: None,
        on_reconnecting=lambda: None,
        on_reconnected=lambda: None,
    )
    with pytest.raises(TransportFailure):
        await WebSocketRelayTransport(connect_timeout=2).open(address, "room1", handlers)


@pytest.mark.asyncio
async def test_server_shutdown_triggers_reconnect():
    """Test a dropped relay moves the link to reconnecting."""
    app, runner, address = await start_relay()
    _room, relay = make_room(MemoryStore(), "Alice")
    try:
        await relay.connect(address, "room1")
        assert await wait_until(lambda: members(app, "room1") == 1)

        await runner.cleanup()

        assert await wait_until(lambda: relay.state != RelayState.CONNECTED)
        assert relay.should_reconnect
        assert relay.reconnect_attempts >= 1
    finally:
        await relay.disconnect()


def test_relay_url_quotes_room():
    transport = WebSocketRelayTransport()
    assert transport.relay_url("http://relay:8765/", "my room") == "http://relay:8765/relay?room=my%20room"
