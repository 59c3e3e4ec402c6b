"""
CipherRoom - Utility functions.

Provides formatting helpers shared by the renderer and the terminal UI.
"""

import logging
from datetime import datetime

from .constants import CIPHER_PREVIEW_LENGTH

logger = logging.getLogger(__name__)


def format_timestamp(iso_timestamp: str, format_str: str = "%H:%M") -> str:
    """
    Format an ISO timestamp as local time.

    Args:
        iso_timestamp: ISO 8601 timestamp string
        format_str: strftime format string

    Returns:
        Formatted time, or an empty string if parsing fails
    """
    try:
        dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
        if dt.tzinfo is not None:
            dt = dt.astimezone()
        return dt.strftime(format_str)
    except (ValueError, TypeError, AttributeError) as e:
        # Timestamps come from peers and are not verified
        logger.debug(f"Failed to parse timestamp '{iso_timestamp}': {e}")
        return ""


def truncate_string(text: str, max_length: int, suffix: str = "…") -> str:
    """
    Truncate text to max_length characters, appending suffix when cut.

    Args:
        text: String to truncate
        max_length: Number of characters kept before the suffix
        suffix: Appended when the text was cut
    """
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def cipher_preview(ciphertext: str, max_length: int = CIPHER_PREVIEW_LENGTH) -> str:
    """Short ciphertext excerpt shown on locked messages."""
    return truncate_string(ciphertext, max_length)
