"""Path utilities for the broker socket, pid file and screenshots."""

import os
from pathlib import Path
from typing import Optional

from ..constants import BASE_DIR_MODE, SOCKET_MODE


def ensure_private_dir(path: str) -> str:
    """
    Create `path` (and parents) if missing and restrict it to the owner.

    Returns:
        The directory path as given.
    """
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(p, BASE_DIR_MODE)
    except OSError:
        pass  # Not our directory (e.g. a shared tmp dir); the socket mode still applies
    return str(p)


def remove_stale_socket(socket_path: str) -> bool:
    """Unlink a leftover socket file. Returns True if something was removed."""
    try:
        os.unlink(socket_path)
        return True
    except FileNotFoundError:
        return False


def restrict_socket(socket_path: str) -> None:
    """Make the bound socket accessible to its owner only."""
    os.chmod(socket_path, SOCKET_MODE)


def write_pid_file(pid_path: str, pid: Optional[int] = None) -> None:
    """Write the pid file atomically using temp file + rename."""
    tmp = f"{pid_path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(str(pid if pid is not None else os.getpid()))
    os.replace(tmp, pid_path)


def remove_pid_file(pid_path: str, pid: Optional[int] = None) -> None:
    """Remove the pid file if it still names `pid` (default: this process)."""
    expected = pid if pid is not None else os.getpid()
    try:
        with open(pid_path, "r", encoding="utf-8") as f:
            current = f.read().strip()
        if current == str(expected):
            os.remove(pid_path)
    except (FileNotFoundError, OSError):
        pass


def screenshot_path(screenshots_dir: str, filename: str) -> str:
    """Resolve where a screenshot is saved; relative names land in `screenshots_dir`."""
    name = filename if filename.endswith(".png") else f"{filename}.png"
    p = Path(name).expanduser()
    if not p.is_absolute():
        ensure_private_dir(screenshots_dir)
        p = Path(screenshots_dir) / p
    p.parent.mkdir(parents=True, exist_ok=True)
    return str(p)
