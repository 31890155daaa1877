"""Diagnostics and debugging information utility functions."""

import os
import sys
import platform
from typing import Optional

from ..context import get_context
from ..client.launcher import is_broker_listening, read_broker_pid, broker_process_alive


def _package_version(name: str) -> str:
    try:
        from importlib.metadata import version
        return version(name)
    except Exception:
        return "?"


def collect_diagnostics(
    exc: Optional[Exception] = None,
    config: Optional[dict] = None,
) -> str:
    """
    Collect diagnostic information about the broker, the session and the environment.

    Args:
        exc: Exception that occurred (can be None)
        config: Configuration dictionary (if None, will get from context)

    Returns:
        str: Formatted diagnostic information
    """
    ctx = get_context()

    if config is None:
        config = ctx.config

    socket_path = config.get("socket_path") or "<unset>"
    pid_path = config.get("pid_path") or ""

    parts = [
        f"OS                : {platform.system()} {platform.release()}",
        f"Python            : {sys.version.split()[0]}",
        f"browser-broker    : {_package_version('browser-broker')}",
        f"mcp               : {_package_version('mcp')}",
        f"Broker home       : {config.get('base_dir')}",
        f"Socket path       : {socket_path}",
        f"Socket exists     : {os.path.exists(socket_path)}",
        f"Broker listening  : {is_broker_listening(socket_path) if socket_path != '<unset>' else False}",
        f"Broker pid        : {read_broker_pid(pid_path) if pid_path else None}",
        f"Broker alive      : {broker_process_alive(pid_path) if pid_path else False}",
        f"Session id        : {ctx.session_id}",
        f"Client connected  : {ctx.is_connected()}",
    ]

    if exc:
        parts += [
            "---- ERROR ----",
            f"Error type        : {type(exc).__name__}",
            f"Error message     : {exc}",
        ]

    return "\n".join(parts)


__all__ = ['collect_diagnostics']
