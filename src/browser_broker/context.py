"""
Centralized session state for the MCP tool server.

One MCP server process is one broker session: it owns a session id and a
lazily connected BrokerClient. Tools reach both through get_context().

Usage:
    from browser_broker.context import get_context, connect_client

    client = await connect_client()
    result = await client.call_tool("navigate", {"url": "https://example.com"})
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from .client.launcher import ensure_broker_running
from .client.session import BrokerClient, make_session_id


@dataclass
class BrokerContext:
    """
    Encapsulates the session state of this process.

    Attributes:
        session_id: Ownership identity presented to the broker
        config: Environment configuration dictionary
        client: Connected BrokerClient, or None before the first tool call
        connect_lock: Serializes (re)connection attempts
    """

    session_id: str
    config: dict = field(default_factory=dict)
    client: Optional[BrokerClient] = None
    connect_lock: Optional[asyncio.Lock] = None

    def is_connected(self) -> bool:
        return self.client is not None and self.client.connected

    def get_connect_lock(self) -> asyncio.Lock:
        if self.connect_lock is None:
            self.connect_lock = asyncio.Lock()
        return self.connect_lock

    @property
    def socket_path(self) -> Optional[str]:
        return self.config.get("socket_path")


# ============================================================================
# Global Context Management
# ============================================================================

_global_context: Optional[BrokerContext] = None


def get_context() -> BrokerContext:
    """
    Get or create the global session context.

    All calls return the same instance until reset_context().
    """
    global _global_context

    if _global_context is None:
        from .config.environment import get_env_config, session_id_from_env

        _global_context = BrokerContext(
            session_id=session_id_from_env() or make_session_id(),
            config=get_env_config(),
        )

    return _global_context


def reset_context() -> None:
    """
    Reset the global context.

    Primarily for testing. Does not close an open client.
    """
    global _global_context
    _global_context = None


async def connect_client(ctx: Optional[BrokerContext] = None) -> BrokerClient:
    """
    Return a connected client for this session, starting the broker if needed.

    Reconnecting reuses the session id, so claims made by this process are
    kept only as long as the broker did not see the old connection close.
    """
    if ctx is None:
        ctx = get_context()

    async with ctx.get_connect_lock():
        if ctx.is_connected():
            return ctx.client

        socket_path = await ensure_broker_running(ctx.config)
        client = BrokerClient(
            socket_path=socket_path,
            session_id=ctx.session_id,
            request_timeout=ctx.config.get("request_timeout") or 90.0,
        )
        await client.connect()
        ctx.client = client
        return client


async def close_client(ctx: Optional[BrokerContext] = None) -> None:
    if ctx is None:
        ctx = get_context()
    if ctx.client is not None:
        await ctx.client.close()
        ctx.client = None


__all__ = [
    "BrokerContext",
    "get_context",
    "reset_context",
    "connect_client",
    "close_client",
]
