"""Broker process discovery and startup."""

import asyncio
import contextlib
import os
import socket
import subprocess
import sys
from typing import Optional

import psutil

from ..config import ensure_private_dir, get_env_config
from ..errors import BrokerUnavailable

import logging
logger = logging.getLogger(__name__)


def is_broker_listening(socket_path: str, timeout: float = 0.25) -> bool:
    """Check if something accepts connections on the broker socket."""
    s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    s.settimeout(timeout)
    try:
        s.connect(socket_path)
        return True
    except (FileNotFoundError, ConnectionError, OSError):
        return False
    finally:
        s.close()


async def broker_accepts(socket_path: str, timeout: float = 0.25) -> bool:
    """Like is_broker_listening, without blocking the running event loop."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_unix_connection(socket_path), timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    with contextlib.suppress(Exception):
        await writer.wait_closed()
    return True


def read_broker_pid(pid_path: str) -> Optional[int]:
    """Read the broker pid file. Returns None if missing or invalid."""
    try:
        with open(pid_path, "r", encoding="utf-8") as f:
            pid = int(f.read().strip())
        return pid if pid > 0 else None
    except (FileNotFoundError, ValueError, OSError):
        return None


def broker_process_alive(pid_path: str) -> bool:
    """Whether the pid recorded in `pid_path` belongs to a live process."""
    pid = read_broker_pid(pid_path)
    if pid is None:
        return False
    try:
        return psutil.pid_exists(pid)
    except Exception:
        return False


def spawn_broker(config: Optional[dict] = None) -> subprocess.Popen:
    """
    Start a detached broker process.

    The child outlives the caller (new session) and logs to broker.log in the
    broker home directory.
    """
    if config is None:
        config = get_env_config()

    ensure_private_dir(config["base_dir"])
    cmd = [
        sys.executable,
        "-m",
        "browser_broker.broker",
        "--socket",
        config["socket_path"],
        "--pid-file",
        config["pid_path"],
        "--call-timeout",
        str(config["call_timeout"]),
        "--log-level",
        config["log_level"],
    ]
    logger.info(f"Starting broker: {' '.join(cmd)}")
    with open(config["log_path"], "ab") as log:
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=log,
            start_new_session=True,
            close_fds=True,
            env=os.environ.copy(),
        )


async def ensure_broker_running(config: Optional[dict] = None, wait_secs: Optional[float] = None) -> str:
    """
    Make sure a broker accepts connections, spawning one if needed.

    Returns:
        The socket path.

    Raises:
        BrokerUnavailable: if no broker is listening after `wait_secs`.
    """
    if config is None:
        config = get_env_config()
    socket_path = config["socket_path"]
    if wait_secs is None:
        wait_secs = config["start_wait"]

    if await broker_accepts(socket_path):
        return socket_path

    if broker_process_alive(config["pid_path"]):
        # Process exists but is not accepting yet (still starting, or wedged).
        logger.info("Broker process alive but socket not ready; waiting")
        proc = None
    else:
        proc = spawn_broker(config)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(0.0, wait_secs)
    while loop.time() < deadline:
        if await broker_accepts(socket_path):
            return socket_path
        if proc is not None and proc.poll() is not None:
            raise BrokerUnavailable(
                f"Broker exited with code {proc.returncode}; see {config['log_path']}"
            )
        await asyncio.sleep(0.1)

    if await broker_accepts(socket_path):
        return socket_path
    raise BrokerUnavailable(f"Broker did not start listening on {socket_path} within {wait_secs:.1f}s")


__all__ = [
    "is_broker_listening",
    "broker_accepts",
    "read_broker_pid",
    "broker_process_alive",
    "spawn_broker",
    "ensure_broker_running",
]
