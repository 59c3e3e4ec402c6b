"""
CipherRoom - Message storage and management.

Holds the ordered log of sealed envelopes for one conversation. The log is
append-only: an envelope is added once, keyed by its id, and never changed
afterwards. Redelivery of the same envelope by the relay is therefore
harmless. The whole log is persisted after every successful append.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .constants import ENVELOPE_FIELDS, MESSAGES_SLOT
from .errors import MalformedPayload, PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Envelope:
    """A sealed note: the unit of persistence and transport."""

    id: str
    sender: str
    at: str
    salt: str
    iv: str
    ciphertext: str

    def to_dict(self) -> Dict[str, str]:
        """Convert envelope to dictionary for storage and transport."""
        return asdict(self)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Envelope":
        """Create envelope from dictionary, ignoring unknown keys."""
        return Envelope(
            id=data["id"],
            sender=data["sender"],
            at=data["at"],
            salt=data["salt"],
            iv=data["iv"],
            ciphertext=data["ciphertext"],
        )


def missing_fields(candidate: Any) -> List[str]:
    """Envelope fields that are absent, empty, or not strings."""
    if not isinstance(candidate, Mapping):
        return list(ENVELOPE_FIELDS)
    return [
        field_name
        for field_name in ENVELOPE_FIELDS
        if not isinstance(candidate.get(field_name), str) or not candidate.get(field_name)
    ]


def validate_shape(candidate: Any) -> bool:
    """
    Check that untrusted input looks like an envelope.

    All of id, sender, at, ciphertext, iv and salt must be present,
    strings, and non-empty.
    """
    return not missing_fields(candidate)


class MessageStore:
    """Ordered, deduplicated envelope log backed by a durable slot.

    Persistence is best-effort: a failed write is logged and the log keeps
    working in memory for the rest of the session.
    """

    def __init__(self, storage, slot: str = MESSAGES_SLOT):
        """Initialize message store.

        Args:
            storage: Key-value slot store (KeyValueStore or MemoryStore)
            slot: Slot name holding the log
        """
        self.storage = storage
        self.slot = slot
        self._envelopes: List[Envelope] = []
        self._ids: set = set()
        self.dropped_count = 0  # malformed inbound payloads discarded

    def load(self) -> List[Envelope]:
        """Hydrate the log from the last persisted snapshot.

        Missing storage starts empty. Corrupt storage is logged and also
        starts empty; individual entries of the wrong shape are skipped.
        """
        self._envelopes = []
        self._ids = set()

        try:
            data = self.storage.read(self.slot)
        except PersistenceFailure as e:
            logger.warning(f"Unable to load saved conversation: {e}")
            return []

        if data is None:
            return []

        if not isinstance(data, list):
            logger.warning(f"Saved conversation is not a list ({type(data).__name__}), starting empty")
            return []

        skipped = 0
        for entry in data:
            if not validate_shape(entry) or entry["id"] in self._ids:
                skipped += 1
                continue
            envelope = Envelope.from_dict(entry)
            self._envelopes.append(envelope)
            self._ids.add(envelope.id)

        if skipped:
            logger.warning(f"Skipped {skipped} unreadable entries in saved conversation")
        logger.info(f"Loaded {len(self._envelopes)} envelopes from slot '{self.slot}'")
        return list(self._envelopes)

    def save(self) -> bool:
        """Persist the full log, replacing the previous snapshot.

        Returns:
            True if the snapshot was written
        """
        try:
            self.storage.write(self.slot, [env.to_dict() for env in self._envelopes])
            return True
        except PersistenceFailure as e:
            logger.warning(f"Unable to persist conversation: {e}")
            return False

    def append(self, envelope: Envelope) -> bool:
        """Add an envelope unless one with the same id is already stored.

        Returns:
            True if the envelope was inserted, False for a duplicate
        """
        if envelope.id in self._ids:
            logger.debug(f"Ignoring duplicate envelope {envelope.id}")
            return False

        self._envelopes.append(envelope)
        self._ids.add(envelope.id)
        logger.debug(f"Added envelope {envelope.id} from {envelope.sender}")
        self.save()
        return True

    def merge(self, candidate: Any) -> bool:
        """Validate untrusted input and append it.

        Malformed candidates are dropped silently and counted.

        Returns:
            True if a new envelope was inserted
        """
        if not validate_shape(candidate):
            self.dropped_count += 1
            error = MalformedPayload(details={"missing": missing_fields(candidate)})
            logger.debug(f"Dropped payload: {error} {error.details} (total dropped: {self.dropped_count})")
            return False
        return self.append(Envelope.from_dict(candidate))

    def clear(self) -> None:
        """Reset the log to empty and persist immediately. Irreversible."""
        count = len(self._envelopes)
        self._envelopes = []
        self._ids = set()
        self.save()
        logger.info(f"Cleared {count} envelopes")

    def replace_all(self, envelopes: Iterable[Envelope]) -> int:
        """Replace the whole log, used by import.

        Duplicate ids in the input keep their first occurrence.

        Returns:
            Number of envelopes now stored
        """
        self._envelopes = []
        self._ids = set()
        for envelope in envelopes:
            if envelope.id in self._ids:
                continue
            self._envelopes.append(envelope)
            self._ids.add(envelope.id)
        self.save()
        logger.info(f"Replaced conversation with {len(self._envelopes)} envelopes")
        return len(self._envelopes)

    def snapshot(self) -> Tuple[Envelope, ...]:
        """Consistent copy of the log for rendering."""
        return tuple(self._envelopes)

    def get(self, envelope_id: str) -> Optional[Envelope]:
        for envelope in self._envelopes:
            if envelope.id == envelope_id:
                return envelope
        return None

    def __contains__(self, envelope_id: object) -> bool:
        return envelope_id in self._ids

    def __len__(self) -> int:
        return len(self._envelopes)

    def __iter__(self) -> Iterator[Envelope]:
        return iter(self.snapshot())
