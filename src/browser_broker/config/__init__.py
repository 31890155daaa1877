"""Configuration management for the browser broker."""

from .environment import (
    get_env_config,
    session_id_from_env,
)

from .paths import (
    ensure_private_dir,
    remove_stale_socket,
    restrict_socket,
    write_pid_file,
    remove_pid_file,
    screenshot_path,
)

__all__ = [
    "get_env_config",
    "session_id_from_env",
    "ensure_private_dir",
    "remove_stale_socket",
    "restrict_socket",
    "write_pid_file",
    "remove_pid_file",
    "screenshot_path",
]
