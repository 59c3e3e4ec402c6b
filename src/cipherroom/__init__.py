"""
CipherRoom - Notes sealed with a shared code.

Two or more parties exchange short notes encrypted with a shared passphrase
before they leave the sender's process. Notes stay encrypted at rest and on
the relay; plaintext exists only in memory while the code is entered.

Author: cipherroom contributors
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "cipherroom contributors"
__license__ = "MIT"

from .constants import APP_NAME, VERSION
from .errors import (
    CipherRoomError,
    ConfigError,
    CryptoError,
    DecryptionFailed,
    ErrorCode,
    ImportFailed,
    InvalidConfiguration,
    MalformedPayload,
    NetworkError,
    PersistenceFailure,
    StorageError,
    TransportFailure,
)
from .message import Envelope, MessageStore
from .session import SessionLock

__all__ = [
    "APP_NAME",
    "VERSION",
    "CipherRoomError",
    "ConfigError",
    "CryptoError",
    "DecryptionFailed",
    "Envelope",
    "ErrorCode",
    "ImportFailed",
    "InvalidConfiguration",
    "MalformedPayload",
    "MessageStore",
    "NetworkError",
    "PersistenceFailure",
    "SessionLock",
    "StorageError",
    "TransportFailure",
    "__author__",
    "__license__",
    "__version__",
]
