"""Connection registry: every open socket and the role it declared."""

import itertools
from typing import Any, Dict, Optional, Set

from ..constants import NATIVE_HOST_ROLE
from ..protocol import Hello, encode_line

import logging
logger = logging.getLogger(__name__)


class Role:
    UNCLASSIFIED = "unclassified"
    SESSION = "session"
    BRIDGE = "bridge"


_conn_ids = itertools.count(1)


class Connection:
    """
    One live duplex channel to a peer.

    `writer` is anything with `write(bytes)` and `is_closing()`, normally an
    asyncio.StreamWriter. Sends after the peer went away are dropped.
    """

    def __init__(self, writer: Any, peer: Optional[str] = None) -> None:
        self.conn_id = next(_conn_ids)
        self.role = Role.UNCLASSIFIED
        self.declared_role: Optional[str] = None
        self.session_id: Optional[str] = None
        self.peer = peer
        self._writer = writer
        self._closed = False

    def __repr__(self) -> str:
        return f"<Connection #{self.conn_id} role={self.role} session={self.session_id}>"

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        try:
            return not self._writer.is_closing()
        except Exception:
            return False

    def send(self, message: dict) -> bool:
        """Write one JSON line. Returns False if the connection is gone."""
        if not self.is_open:
            logger.debug(f"Dropping {message.get('type')} for closed {self!r}")
            return False
        try:
            self._writer.write(encode_line(message))
        except (ConnectionError, RuntimeError) as e:
            logger.debug(f"Write to {self!r} failed: {e}")
            self._closed = True
            return False
        return True

    def mark_closed(self) -> None:
        self._closed = True


class ConnectionRegistry:
    """Tracks open connections, their roles and the authoritative bridge."""

    def __init__(self) -> None:
        self._connections: Set[Connection] = set()
        self._bridge: Optional[Connection] = None

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: Connection) -> bool:
        return conn in self._connections

    def add(self, conn: Connection) -> None:
        self._connections.add(conn)
        logger.debug(f"Accepted {conn!r}")

    def remove(self, conn: Connection) -> None:
        self._connections.discard(conn)

    def classify(self, conn: Connection, hello: Hello) -> str:
        """
        Assign a role from a handshake.

        `native-host` makes the connection the authoritative bridge, replacing
        any previous one without closing it. Every other role is a session.
        """
        conn.declared_role = hello.role
        if hello.role == NATIVE_HOST_ROLE:
            conn.role = Role.BRIDGE
            previous = self._bridge
            self._bridge = conn
            if previous is not None and previous is not conn:
                logger.info(f"Bridge {conn!r} replaces {previous!r}")
            else:
                logger.info(f"Bridge connected: {conn!r}")
        else:
            conn.role = Role.SESSION
            if conn.session_id is None:
                conn.session_id = hello.session_id
            logger.info(f"Session connected: {conn.session_id} ({conn!r})")
        return conn.role

    @property
    def bridge(self) -> Optional[Connection]:
        return self._bridge

    def bridge_online(self) -> bool:
        return self._bridge is not None and self._bridge.is_open

    def clear_bridge(self, conn: Connection) -> bool:
        """Forget the bridge if `conn` is the current one."""
        if self._bridge is conn:
            self._bridge = None
            return True
        return False

    def counts(self) -> Dict[str, int]:
        out = {Role.UNCLASSIFIED: 0, Role.SESSION: 0, Role.BRIDGE: 0}
        for conn in self._connections:
            out[conn.role] = out.get(conn.role, 0) + 1
        return out

    def session_ids(self) -> Set[str]:
        return {c.session_id for c in self._connections if c.role == Role.SESSION and c.session_id}


__all__ = [
    "Role",
    "Connection",
    "ConnectionRegistry",
]
