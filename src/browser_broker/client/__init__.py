"""Client side of the broker socket: session client and broker launcher."""

from .session import BrokerClient, make_session_id
from .launcher import (
    is_broker_listening,
    broker_accepts,
    read_broker_pid,
    broker_process_alive,
    spawn_broker,
    ensure_broker_running,
)

__all__ = [
    "BrokerClient",
    "make_session_id",
    "is_broker_listening",
    "broker_accepts",
    "read_broker_pid",
    "broker_process_alive",
    "spawn_broker",
    "ensure_broker_running",
]
