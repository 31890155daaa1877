"""Environment configuration and validation."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..constants import (
    BASE_DIR_NAME,
    SOCKET_FILE_NAME,
    PID_FILE_NAME,
    LOG_FILE_NAME,
    SCREENSHOTS_DIR_NAME,
    CALL_TIMEOUT_SECS,
    REQUEST_TIMEOUT_SECS,
    BROKER_START_WAIT_SECS,
)

import logging
logger = logging.getLogger(__name__)

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}; using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value


def get_env_config() -> dict:
    """
    Read environment variables and return the broker configuration.

    Optional:   BROWSER_BROKER_HOME (default ~/.browser-broker)
                BROWSER_BROKER_SOCKET (default <home>/broker.sock)
                BROWSER_BROKER_CALL_TIMEOUT (seconds, default 60)
                BROWSER_BROKER_REQUEST_TIMEOUT (seconds, default 90)
                BROWSER_BROKER_START_WAIT (seconds, default 5)
                BROWSER_BROKER_LOG_LEVEL (default INFO)

    The broker keeps no state on disk; the home directory only holds the
    socket, the pid file, the broker log and saved screenshots.
    """
    home_env = (os.getenv("BROWSER_BROKER_HOME") or "").strip()
    base_dir = Path(home_env).expanduser() if home_env else Path.home() / BASE_DIR_NAME

    socket_env = (os.getenv("BROWSER_BROKER_SOCKET") or "").strip()
    socket_path = Path(socket_env).expanduser() if socket_env else base_dir / SOCKET_FILE_NAME

    log_level = (os.getenv("BROWSER_BROKER_LOG_LEVEL") or "INFO").strip().upper() or "INFO"

    return {
        "base_dir": str(base_dir),
        "socket_path": str(socket_path),
        "pid_path": str(base_dir / PID_FILE_NAME),
        "log_path": str(base_dir / LOG_FILE_NAME),
        "screenshots_dir": str(base_dir / SCREENSHOTS_DIR_NAME),
        "call_timeout": _env_float("BROWSER_BROKER_CALL_TIMEOUT", CALL_TIMEOUT_SECS),
        "request_timeout": _env_float("BROWSER_BROKER_REQUEST_TIMEOUT", REQUEST_TIMEOUT_SECS),
        "start_wait": _env_float("BROWSER_BROKER_START_WAIT", BROKER_START_WAIT_SECS),
        "log_level": log_level,
    }


def session_id_from_env() -> Optional[str]:
    """Session identifier pinned through BROWSER_BROKER_SESSION_ID, if any."""
    value = (os.getenv("BROWSER_BROKER_SESSION_ID") or "").strip()
    return value or None
