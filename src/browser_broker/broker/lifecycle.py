"""Lifecycle manager: bridge and session connect/disconnect transitions."""

from ..errors import BridgeDisconnected
from ..protocol import Hello, host_ready
from .connections import Connection, ConnectionRegistry, Role
from .ownership import OwnershipTable
from .pending import PendingCallTable

import logging
logger = logging.getLogger(__name__)


class LifecycleManager:
    def __init__(
        self,
        registry: ConnectionRegistry,
        pending: PendingCallTable,
        ownership: OwnershipTable,
    ) -> None:
        self.registry = registry
        self.pending = pending
        self.ownership = ownership

    def on_handshake(self, conn: Connection, hello: Hello) -> None:
        """Classify `conn`; a new bridge is told about the live claims."""
        role = self.registry.classify(conn, hello)
        if role == Role.BRIDGE:
            conn.send(host_ready(self.ownership.snapshot()))

    def on_close(self, conn: Connection) -> None:
        """
        Tear down state tied to `conn`.

        Losing the current bridge fails every pending call; claims survive it.
        Losing a session releases its claims; its in-flight calls are left to
        resolve or time out and their answers are dropped.
        """
        conn.mark_closed()
        self.registry.remove(conn)

        if self.registry.clear_bridge(conn):
            logger.warning(f"Bridge disconnected: {conn!r}")
            self.pending.fail_all(BridgeDisconnected("Bridge disconnected (native host closed its connection)"))

        if conn.session_id:
            self.ownership.release_all(conn.session_id)
            logger.info(f"Session closed: {conn.session_id} ({conn!r})")


__all__ = ["LifecycleManager"]
