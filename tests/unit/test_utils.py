"""
Unit tests for cipherroom.utils module.

Tests formatting helpers used when rendering envelopes.
"""

from cipherroom.constants import CIPHER_PREVIEW_LENGTH
from cipherroom.utils import cipher_preview, format_timestamp, truncate_string


class TestFormatTimestamp:
    """Test timestamp formatting."""

    def test_naive_timestamp(self):
        """Test that timestamps without offset are shown as written."""
        assert format_timestamp("2025-01-01T09:05:00") == "09:05"

    def test_custom_format(self):
        assert format_timestamp("2025-03-04T09:05:00", "%Y-%m-%d") == "2025-03-04"

    def test_aware_timestamp(self):
        """Test that UTC timestamps are converted to a local HH:MM."""
        formatted = format_timestamp("2025-01-01T09:05:00+00:00")
        assert len(formatted) == 5
        assert formatted[2] == ":"

    def test_zulu_suffix(self):
        assert format_timestamp("2025-01-01T09:05:00Z") == format_timestamp("2025-01-01T09:05:00+00:00")

    def test_invalid_timestamp(self):
        """Test that unparseable peer timestamps render as empty."""
        assert format_timestamp("yesterday") == ""
        assert format_timestamp("") == ""
        assert format_timestamp(None) == ""


class TestTruncation:
    """Test string truncation."""

    def test_short_string(self):
        assert truncate_string("hello", 10) == "hello"

    def test_exact_length(self):
        assert truncate_string("hello", 5) == "hello"

    def test_long_string(self):
        assert truncate_string("hello world", 5) == "hello…"

    def test_custom_suffix(self):
        assert truncate_string("hello world", 5, suffix="...") == "hello..."


class TestCipherPreview:
    """Test ciphertext previews."""

    def test_short_ciphertext_unchanged(self):
        assert cipher_preview("QUJD") == "QUJD"

    def test_long_ciphertext(self):
        preview = cipher_preview("A" * 500)
        assert preview == "A" * CIPHER_PREVIEW_LENGTH + "…"
