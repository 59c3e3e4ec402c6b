"""
CipherRoom - Websocket relay transport.

Carries envelopes to and from a relay room over a websocket (aiohttp).
Frames are JSON objects: {"type": "message", "room": ..., <envelope fields>}.

The transport reports a dropped socket through on_close and does not try to
reconnect on its own; RelaySync decides when to reconnect.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

from .constants import RELAY_CONNECT_TIMEOUT, RELAY_HEARTBEAT, RELAY_PATH
from .errors import ErrorCode, TransportFailure
from .relay import RelayConnection, RelayTransport, TransportHandlers

logger = logging.getLogger(__name__)

FRAME_MESSAGE = "message"


class WebSocketRelayConnection(RelayConnection):
    """One open websocket to a relay room."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        ws: aiohttp.ClientWebSocketResponse,
        handlers: TransportHandlers,
    ):
        self._session = session
        self._ws = ws
        self._handlers = handlers
        self._receive_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.closed

    def start(self) -> None:
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def send(self, room: str, payload: Dict[str, Any]) -> None:
        if self.closed:
            raise TransportFailure(ErrorCode.E204_SEND_FAILED, "Relay connection is closed")

        frame = dict(payload)
        frame["type"] = FRAME_MESSAGE
        frame["room"] = room
        try:
            await self._ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportFailure(ErrorCode.E204_SEND_FAILED, f"Relay send failed: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        task = self._receive_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._ws.close()
        await self._session.close()
        logger.debug("Websocket relay connection closed")

    async def _receive_loop(self) -> None:
        error: Optional[BaseException] = None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = self._ws.exception()
                    break
        except aiohttp.ClientError as e:
            error = e

        if self._closed:
            return
        # Socket dropped without close() being called
        self._closed = True
        await self._session.close()
        self._handlers.on_close(error)

    def _dispatch(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Ignoring non-JSON relay frame")
            return

        if not isinstance(frame, dict):
            logger.debug("Ignoring relay frame that is not an object")
            return
        if frame.get("type", FRAME_MESSAGE) != FRAME_MESSAGE:
            return

        try:
            self._handlers.on_message(frame)
        except Exception as e:
            logger.error(f"Error handling relay frame: {e}", exc_info=True)


class WebSocketRelayTransport(RelayTransport):
    """Opens websocket connections to {address}/relay?room=<room>."""

    def __init__(
        self,
        connect_timeout: float = RELAY_CONNECT_TIMEOUT,
        heartbeat: float = RELAY_HEARTBEAT,
        path: str = RELAY_PATH,
    ):
        self.connect_timeout = connect_timeout
        self.heartbeat = heartbeat
        self.path = path

    def relay_url(self, address: str, room: str) -> str:
        return f"{address.rstrip('/')}{self.path}?room={quote(room, safe='')}"

    async def open(self, address: str, room: str, handlers: TransportHandlers) -> RelayConnection:
        url = self.relay_url(address, room)
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
        )
        try:
            ws = await session.ws_connect(url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            await session.close()
            raise TransportFailure(
                ErrorCode.E201_CONNECTION_FAILED,
                f"Cannot connect to relay: {e}",
                {"url": url, "error": str(e)},
            )

        connection = WebSocketRelayConnection(session, ws, handlers)
        connection.start()
        logger.info(f"Websocket connected to {url}")
        return connection
