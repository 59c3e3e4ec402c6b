"""
CipherRoom - Global Constants and Configuration Values

This module defines all constants used throughout the CipherRoom application.
All magic numbers and configuration defaults are centralized here.

Author: cipherroom contributors
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "CipherRoom"

# Cryptography Constants
KEY_SIZE = 32  # 256-bit AES key
NONCE_SIZE = 12  # 96-bit GCM nonce
SALT_SIZE = 16  # 128-bit PBKDF2 salt
TAG_SIZE = 16  # GCM integrity tag appended to ciphertext
PBKDF2_ITERATIONS = 120000

# Envelope fields required on every inbound payload
ENVELOPE_FIELDS = ("id", "sender", "at", "ciphertext", "iv", "salt")

# Relay Reconnect Policy (seconds)
RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_MAX_EXPONENT = 5
RECONNECT_JITTER = 0.0  # fraction of the delay, 0 keeps delays exact

# Relay Transport
RELAY_PATH = "/relay"
RELAY_CONNECT_TIMEOUT = 15  # seconds
RELAY_HEARTBEAT = 20  # seconds

# Relay status labels
STATUS_DISCONNECTED = "Disconnected"
STATUS_CONNECTING = "Connecting…"
STATUS_CONNECTED = "Connected"
STATUS_RECONNECTING = "Reconnecting…"
STATUS_RELAY_ERROR = "Relay error"
STATUS_MISSING_TARGET = "Enter relay URL and room"

# Session Lock labels
LOCK_DEFAULT_REASON = "Locked · enter the code"
LOCK_UNLOCKED_LABEL = "Unlocked with shared code"
LOCK_FOCUS_REASON = "Locked after focus left"
LOCK_NEED_CODE = "Add a shared code before sending."

# Render
CIPHER_PREVIEW_LENGTH = 180
DEFAULT_SENDER = "You"
PEER_SENDER = "Peer"
EMPTY_LOG_TEXT = "No messages yet. Set a shared code, then send a note."
LOCKED_NO_CODE_TEXT = "Enter the shared code to view."
LOCKED_WRONG_CODE_TEXT = "Incorrect code for this message."

# Demo content
DEMO_CODE = "buildaq-demo"
DEMO_SENDER = "cipherroom"
DEMO_PARTNER = "Partner"
DEMO_HINTS = [
    "All messages are locked until you and your partner share the same code.",
    "Codes never leave your device. Change them anytime.",
    "Use the demo button to see how a locked message looks.",
]

# File Paths / storage slots
DEFAULT_DATA_DIR = "~/.cipherroom"
CONFIG_FILENAME = "config.toml"
MESSAGES_SLOT = "messages"
RELAY_SLOT = "relay"
LOG_FILENAME = "cipherroom.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

# Connection State Machine
STATE_HISTORY_LIMIT = 100
