"""Broker status and debugging tool implementations."""

import json
from ..context import get_context
from ..utils.diagnostics import collect_diagnostics


async def status() -> str:
    """Report whether the browser extension is connected and what is claimed."""
    ctx = get_context()
    data = await ctx.client.status()
    host = bool((data or {}).get("hostConnected"))
    return json.dumps({
        "ok": True,
        "hostConnected": host,
        "message": (
            "Browser extension connected and ready."
            if host
            else "Browser extension not connected. Make sure the browser is running with the extension enabled."
        ),
        "sessionId": ctx.session_id,
        "broker": data,
    })


async def debug_info() -> str:
    """Collect diagnostics without requiring the broker to be up."""
    ctx = get_context()
    diagnostics = {
        "summary": collect_diagnostics(),
        "context_state": {
            "session_id": ctx.session_id,
            "client_connected": ctx.is_connected(),
            "socket_path": ctx.socket_path,
        },
    }
    if ctx.is_connected():
        diagnostics["broker_status"] = await ctx.client.status()
    return json.dumps({"ok": True, "diagnostics": diagnostics})
