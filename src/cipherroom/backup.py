"""
CipherRoom - Encrypted log export and import.

Exports the whole conversation as one line of base64 text (the JSON log,
still sealed) that can be pasted elsewhere or saved to a file, and imports
such a line back. Import replaces the local log wholesale, so the payload is
fully validated before anything changes.

Author: cipherroom contributors
Version: 1.0.0
"""

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import List

import aiofiles

from .errors import ImportFailed
from .message import Envelope, MessageStore, validate_shape

logger = logging.getLogger(__name__)


def export_log(store: MessageStore) -> str:
    """Encode the conversation as base64 of its UTF-8 JSON log."""
    data = [env.to_dict() for env in store.snapshot()]
    json_data = json.dumps(data, ensure_ascii=False)
    return base64.b64encode(json_data.encode("utf-8")).decode("ascii")


def parse_export(payload: str) -> List[Envelope]:
    """Decode an exported log.

    Raises:
        ImportFailed: If the payload is not base64 JSON holding a list of
            well-formed envelopes
    """
    text = (payload or "").strip()
    if not text:
        raise ImportFailed("Nothing to import")

    try:
        parsed = json.loads(base64.b64decode(text, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise ImportFailed(details={"error": str(e)})

    if not isinstance(parsed, list):
        raise ImportFailed(details={"error": f"expected a list, got {type(parsed).__name__}"})

    bad = [index for index, entry in enumerate(parsed) if not validate_shape(entry)]
    if bad:
        raise ImportFailed(details={"error": "malformed entries", "indices": bad[:10]})

    return [Envelope.from_dict(entry) for entry in parsed]


def import_log(store: MessageStore, payload: str) -> int:
    """Replace the conversation with an exported log.

    Returns:
        Number of envelopes now stored

    Raises:
        ImportFailed: If the payload is invalid (store unchanged)
    """
    envelopes = parse_export(payload)
    count = store.replace_all(envelopes)
    logger.info(f"Imported {count} envelopes")
    return count


async def write_export(store: MessageStore, path: Path) -> Path:
    """Write the exported log to a file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(export_log(store) + "\n")
    logger.info(f"Exported {len(store)} envelopes to {path}")
    return path


async def read_import(store: MessageStore, path: Path) -> int:
    """Import an exported log from a file.

    Raises:
        ImportFailed: If the file cannot be read or holds an invalid payload
    """
    try:
        async with aiofiles.open(Path(path), "r", encoding="utf-8") as f:
            payload = await f.read()
    except OSError as e:
        raise ImportFailed(f"Cannot read import file: {e}", {"path": str(path)})
    return import_log(store, payload)
