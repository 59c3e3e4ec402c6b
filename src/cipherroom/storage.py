"""
CipherRoom - Durable key-value slots.

Each slot holds one independent JSON document (the message log, the relay
configuration). Writes go to a temporary file first and are then renamed
over the previous snapshot, so a crash never leaves a half-written slot.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ErrorCode, PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueStore:
    """JSON file per slot inside a data directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _slot_path(self, slot: str) -> Path:
        return self.data_dir / f"{slot}.json"

    def read(self, slot: str) -> Optional[Any]:
        """
        Read a slot.

        Returns:
            Parsed JSON document, or None if the slot was never written

        Raises:
            PersistenceFailure: If the slot exists but cannot be read or parsed
        """
        path = self._slot_path(slot)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            raise PersistenceFailure(
                ErrorCode.E403_STORAGE_LOAD_FAILED,
                f"Cannot read slot '{slot}': {e}",
                {"path": str(path), "error": str(e)},
            )
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise PersistenceFailure(
                ErrorCode.E403_STORAGE_LOAD_FAILED,
                f"Slot '{slot}' is corrupted: {e}",
                {"path": str(path), "error": str(e)},
            )

    def write(self, slot: str, value: Any) -> None:
        """
        Replace a slot with a new snapshot.

        Raises:
            PersistenceFailure: If the snapshot cannot be written
        """
        path = self._slot_path(slot)
        temp_file = path.with_name(f"{path.name}.tmp")

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            json_data = json.dumps(value, indent=2, ensure_ascii=False)

            # Write to temporary file first for atomicity
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(json_data)

            os.replace(temp_file, path)
            logger.debug(f"Saved slot '{slot}' to {path}")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(
                ErrorCode.E404_STORAGE_SAVE_FAILED,
                f"Cannot save slot '{slot}': {e}",
                {"path": str(path), "error": str(e)},
            )

    def delete(self, slot: str) -> None:
        path = self._slot_path(slot)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceFailure(
                ErrorCode.E404_STORAGE_SAVE_FAILED,
                f"Cannot delete slot '{slot}': {e}",
                {"path": str(path), "error": str(e)},
            )


class MemoryStore:
    """In-memory slots with the same interface, for ephemeral sessions."""

    def __init__(self):
        self._slots: Dict[str, str] = {}

    def read(self, slot: str) -> Optional[Any]:
        raw = self._slots.get(slot)
        return None if raw is None else json.loads(raw)

    def write(self, slot: str, value: Any) -> None:
        # Kept as JSON text, same as on disk
        self._slots[slot] = json.dumps(value)

    def delete(self, slot: str) -> None:
        self._slots.pop(slot, None)
