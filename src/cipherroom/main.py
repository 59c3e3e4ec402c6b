"""
CipherRoom - Main entry point for the application.
"""

import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from . import __version__, backup
from .config import Config
from .constants import (
    CONFIG_FILENAME,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
)
from .errors import CipherRoomError
from .message import MessageStore
from .relay import RelaySync
from .room import ChatRoom
from .session import SessionLock
from .storage import KeyValueStore, MemoryStore
from .transport import WebSocketRelayTransport

logger = logging.getLogger(__name__)


def setup_logging(data_dir: Optional[Path], level: str = "INFO", file_logging: bool = True) -> None:
    """Configure the root logger: rotating file in the data dir, console for warnings."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if file_logging and data_dir is not None:
        data_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            data_dir / LOG_FILENAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # The terminal belongs to the UI; only surface warnings on stderr
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)
    root.addHandler(console)


def build_room(config: Config, ephemeral: bool = False):
    """Wire storage, store, lock, relay and coordinator from configuration."""
    data_dir = config.data_dir
    storage = MemoryStore() if ephemeral else KeyValueStore(data_dir)

    store = MessageStore(storage)
    store.load()

    lock = SessionLock(cache_keys=config.get("crypto", "cache_keys", True))
    transport = WebSocketRelayTransport(
        connect_timeout=config.get("relay", "connect_timeout"),
        heartbeat=config.get("relay", "heartbeat"),
    )
    relay = RelaySync(
        transport,
        store,
        storage=storage,
        max_delay=config.get("relay", "max_backoff"),
        jitter=config.get("relay", "jitter"),
    )
    relay.load_config()
    if config.get("relay", "address"):
        relay.relay_address = config.get("relay", "address")
    if config.get("relay", "room"):
        relay.room = config.get("relay", "room")

    room = ChatRoom(store, lock, relay, sender_label=config.get("session", "sender_label"))
    return room, relay


def main():
    """Main entry point for CipherRoom."""
    parser = argparse.ArgumentParser(
        description="CipherRoom - notes sealed with a shared code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cipherroom                                  # Start with the default data directory
  cipherroom --relay http://host:8765 --room team
  cipherroom --export backup.txt              # Write the encrypted log and exit
  cipherroom --relay http://host:8765 --room team --save-config
        """,
    )
    parser.add_argument("--version", action="version", version=f"CipherRoom {__version__}")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory for the log, relay settings and logs")
    parser.add_argument("--config", type=str, default=None, help="Path to config.toml")
    parser.add_argument("--relay", type=str, default=None, help="Relay URL")
    parser.add_argument("--room", type=str, default=None, help="Relay room name")
    parser.add_argument("--name", type=str, default=None, help="Sender label on your notes")
    parser.add_argument("--ephemeral", action="store_true", help="Keep the log in memory only")
    parser.add_argument("--export", type=str, default=None, metavar="FILE", help="Export the encrypted log and exit")
    parser.add_argument("--import", dest="import_file", type=str, default=None, metavar="FILE",
                        help="Replace the log with an export and exit")
    parser.add_argument("--save-config", action="store_true",
                        help="Write the effective settings to the config file and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    config_path = Path(args.config).expanduser() if args.config else None
    if config_path is None and args.data_dir:
        config_path = Path(args.data_dir).expanduser() / CONFIG_FILENAME

    try:
        config = Config(config_path)
    except CipherRoomError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if args.data_dir:
        config.set("storage", "data_dir", str(Path(args.data_dir).expanduser().resolve()))
    if args.relay:
        config.set("relay", "address", args.relay)
    if args.room:
        config.set("relay", "room", args.room)
    if args.name:
        config.set("session", "sender_label", args.name)

    if args.save_config:
        try:
            config.save()
        except CipherRoomError as e:
            print(f"Configuration error: {e}")
            sys.exit(1)
        print(f"Saved configuration to {config.config_path}")
        return

    data_dir = config.data_dir
    setup_logging(
        None if args.ephemeral else data_dir,
        "DEBUG" if args.debug else config.get("logging", "level", "INFO"),
        config.get("logging", "file_logging", True),
    )

    room, relay = build_room(config, ephemeral=args.ephemeral)

    if args.export:
        path = asyncio.run(backup.write_export(room.store, Path(args.export).expanduser()))
        print(f"Exported {len(room.store)} envelopes to {path}")
        return

    if args.import_file:
        try:
            count = asyncio.run(backup.read_import(room.store, Path(args.import_file).expanduser()))
        except CipherRoomError as e:
            print(e.message)
            sys.exit(1)
        print(f"Imported {count} envelopes")
        return

    if config.get("session", "seed_demo", True):
        asyncio.run(room.seed_demo())

    # Imported here so export/import work without a terminal UI
    from .ui import CipherRoomApp

    app = CipherRoomApp(
        room,
        relay,
        data_dir,
        lock_on_blur=config.get("session", "lock_on_blur", True),
        auto_connect=bool(relay.relay_address and relay.room),
    )
    app.run()


if __name__ == "__main__":
    main()
