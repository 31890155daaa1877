"""
Every agent gets its own MCP connection, and with it its own broker session.

Many agents share one browser. The browser extension talks to exactly one
native messaging host, and the host talks to one long-lived local broker over
a Unix socket. Each MCP server process connects to that same broker as a
session. Agents can start and stop their MCP servers at will; the broker keeps
running and the browser is never restarted on their behalf.

## Tab ownership

The first session to act on a tab owns it. Other sessions get an
`ownership_conflict` error for that tab until the owner releases it, closes
its connection, or someone claims it with force. Listing tabs and asking for
the active tab never require ownership.

## No persistence

Claims live in broker memory only. Restarting the broker forgets them.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
