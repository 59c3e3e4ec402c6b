"""
CipherRoom - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the CipherRoom application. Each error has a unique code for logging and
debugging.

Most of these never escape a component: the codec, store and relay catch
them at their boundary and turn them into a result value or a status label.

Author: cipherroom contributors
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all CipherRoom error codes."""

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"

    # Network Errors (E200-E299)
    E200_NETWORK_ERROR = "E200"
    E201_CONNECTION_FAILED = "E201"
    E204_SEND_FAILED = "E204"
    E206_INVALID_MESSAGE = "E206"

    # Storage Errors (E400-E499)
    E400_STORAGE_ERROR = "E400"
    E403_STORAGE_LOAD_FAILED = "E403"
    E404_STORAGE_SAVE_FAILED = "E404"
    E405_IMPORT_FAILED = "E405"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class CipherRoomError(Exception):
    """Base exception class for all CipherRoom errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize a CipherRoom error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(CipherRoomError):
    """Exception raised for cryptographic operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class DecryptionFailed(CryptoError):
    """Wrong shared code or corrupted envelope.

    This is the expected outcome of opening an envelope with the wrong code,
    so callers treat it as a normal branch rather than a crash.
    """

    def __init__(
        self,
        message: str = "Unable to open envelope with this code",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E102_DECRYPTION_FAILED, message, details)


class PayloadError(CipherRoomError):
    """Exception raised for inbound data that cannot be accepted."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E206_INVALID_MESSAGE,
        message: str = "Invalid payload",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MalformedPayload(PayloadError):
    """Inbound envelope missing required fields."""

    def __init__(self, message: str = "Malformed envelope", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E206_INVALID_MESSAGE, message, details)


class StorageError(CipherRoomError):
    """Exception raised for durable storage failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E400_STORAGE_ERROR,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class PersistenceFailure(StorageError):
    """A durable slot could not be read or written."""


class ImportFailed(StorageError):
    """An import payload was not a valid exported log."""

    def __init__(self, message: str = "Import failed. Is the payload intact?", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E405_IMPORT_FAILED, message, details)


class ConfigError(CipherRoomError):
    """Exception raised for configuration failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class InvalidConfiguration(ConfigError):
    """Relay address or room missing."""

    def __init__(self, message: str = "Relay address and room are required", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E703_INVALID_CONFIG, message, details)


class NetworkError(CipherRoomError):
    """Exception raised for network operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_NETWORK_ERROR,
        message: str = "Network operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class TransportFailure(NetworkError):
    """Connect or send error reported by the relay transport."""
