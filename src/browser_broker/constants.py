"""
Global constants and configuration defaults.
No dependencies - safe to import from anywhere.
"""

import os

# ============================================================================
# Timing Configuration
# ============================================================================

CALL_TIMEOUT_SECS = float(os.getenv("BROWSER_BROKER_CALL_TIMEOUT", "60"))
"""How long the broker waits for the bridge to answer a forwarded tool call."""

REQUEST_TIMEOUT_SECS = float(os.getenv("BROWSER_BROKER_REQUEST_TIMEOUT", "90"))
"""How long a session client waits for the broker to answer a request."""

BROKER_START_WAIT_SECS = float(os.getenv("BROWSER_BROKER_START_WAIT", "5"))
"""How long to wait for a freshly spawned broker to accept connections."""


# ============================================================================
# Protocol Constants
# ============================================================================

NATIVE_HOST_ROLE = "native-host"
"""Handshake role declared by the native bridge connection."""

SESSION_ROLE = "session"
"""Handshake role declared by session clients."""

EXEMPT_TOOLS = frozenset({"get_tabs", "get_active_tab"})
"""Tools that do not target a specific tab and skip ownership checks."""

ACTIVE_TAB_TOOL = "get_active_tab"
"""Exempt tool used to discover the currently active tab."""

REQUEST_OPS = ("status", "list_claims", "claim_tab", "release_tab", "tool")
"""Operations a session may request."""


# ============================================================================
# Size Limits
# ============================================================================

STREAM_LIMIT_BYTES = 64 * 1024 * 1024
"""Maximum length of one JSON line on the broker socket (screenshots are large)."""

NATIVE_MAX_OUTBOUND_BYTES = 1024 * 1024
"""Chrome refuses native messages larger than 1 MiB sent from the host."""

NATIVE_MAX_INBOUND_BYTES = 64 * 1024 * 1024
"""Chrome never sends native messages larger than 64 MiB to the host."""


# ============================================================================
# Filesystem
# ============================================================================

BASE_DIR_NAME = ".browser-broker"
SOCKET_FILE_NAME = "broker.sock"
PID_FILE_NAME = "broker.pid"
LOG_FILE_NAME = "broker.log"
SCREENSHOTS_DIR_NAME = "screenshots"

SOCKET_MODE = 0o600
BASE_DIR_MODE = 0o700


__all__ = [
    "CALL_TIMEOUT_SECS",
    "REQUEST_TIMEOUT_SECS",
    "BROKER_START_WAIT_SECS",
    "NATIVE_HOST_ROLE",
    "SESSION_ROLE",
    "EXEMPT_TOOLS",
    "ACTIVE_TAB_TOOL",
    "REQUEST_OPS",
    "STREAM_LIMIT_BYTES",
    "NATIVE_MAX_OUTBOUND_BYTES",
    "NATIVE_MAX_INBOUND_BYTES",
    "BASE_DIR_NAME",
    "SOCKET_FILE_NAME",
    "PID_FILE_NAME",
    "LOG_FILE_NAME",
    "SCREENSHOTS_DIR_NAME",
    "SOCKET_MODE",
    "BASE_DIR_MODE",
]
