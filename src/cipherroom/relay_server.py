"""
CipherRoom - Minimal relay server.

Forwards every envelope frame posted to a room to the other sockets in the
same room. The server never sees plaintext or shared codes: it only moves
sealed envelopes around and keeps nothing once a room empties.

Run with: cipherroom-relay --host 0.0.0.0 --port 8765
"""

import argparse
import json
import logging
from collections import defaultdict
from typing import Dict, Set

from aiohttp import WSCloseCode, WSMsgType, web

from .constants import LOG_DATE_FORMAT, LOG_FORMAT, RELAY_HEARTBEAT, RELAY_PATH
from .message import validate_shape

logger = logging.getLogger(__name__)

ROOMS_KEY = web.AppKey("rooms", dict)


async def relay_handler(request: web.Request) -> web.StreamResponse:
    room = request.query.get("room", "").strip()
    if not room:
        raise web.HTTPBadRequest(text="room is required")

    ws = web.WebSocketResponse(heartbeat=RELAY_HEARTBEAT)
    await ws.prepare(request)

    rooms: Dict[str, Set[web.WebSocketResponse]] = request.app[ROOMS_KEY]
    members = rooms[room]
    members.add(ws)
    logger.info(f"Peer joined room '{room}' ({len(members)} connected)")

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await _forward(msg.data, ws, members)
            elif msg.type == WSMsgType.ERROR:
                logger.warning(f"Relay socket error: {ws.exception()}")
    finally:
        members.discard(ws)
        if not members:
            rooms.pop(room, None)
        logger.info(f"Peer left room '{room}'")

    return ws


async def _forward(data: str, sender: web.WebSocketResponse, members: Set[web.WebSocketResponse]) -> None:
    try:
        payload = json.loads(data)
    except ValueError:
        logger.debug("Dropping non-JSON frame")
        return

    if not validate_shape(payload):
        logger.debug("Dropping malformed envelope frame")
        return

    for peer in list(members):
        if peer is sender or peer.closed:
            continue
        try:
            await peer.send_str(data)
        except ConnectionError as e:
            logger.debug(f"Dropping peer after send failure: {e}")
            members.discard(peer)


async def _close_peers(app: web.Application) -> None:
    for members in list(app[ROOMS_KEY].values()):
        for ws in list(members):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Relay shutting down")


def create_app() -> web.Application:
    app = web.Application()
    app[ROOMS_KEY] = defaultdict(set)
    app.on_shutdown.append(_close_peers)
    app.router.add_get(RELAY_PATH, relay_handler)
    return app


def main():
    """Entry point for the relay server."""
    parser = argparse.ArgumentParser(description="CipherRoom - envelope relay server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to listen on (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8765, help="Port to listen on (default: 8765)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    web.run_app(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
