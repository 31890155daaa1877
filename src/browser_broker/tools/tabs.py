"""Tab listing tool implementations."""

from ..context import get_context
from .results import action_payload


async def get_tabs() -> str:
    """List all open tabs. Does not claim anything."""
    result = await get_context().client.call_tool("get_tabs")
    return action_payload("get_tabs", result, decode=True)


async def get_active_tab() -> str:
    result = await get_context().client.call_tool("get_active_tab")
    return action_payload("get_active_tab", result)
