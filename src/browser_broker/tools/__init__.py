# browser_broker/tools/__init__.py
"""
MCP tool implementations - async wrappers that return JSON responses.

Each tool forwards one call through this session's BrokerClient and shapes the
extension's `{tabId, content}` result into a JSON payload.
"""

from .broker_info import (
    status,
    debug_info,
)

from .claims import (
    list_claims,
    claim_tab,
    release_tab,
)

from .tabs import (
    get_tabs,
    get_active_tab,
)

from .interaction import (
    navigate,
    click,
    type_text,
    scroll,
    wait,
    execute,
)

from .extraction import (
    snapshot,
    take_screenshot,
    extract,
    query,
    wait_for,
)

__all__ = [
    "status",
    "debug_info",
    "list_claims",
    "claim_tab",
    "release_tab",
    "get_tabs",
    "get_active_tab",
    "navigate",
    "click",
    "type_text",
    "scroll",
    "wait",
    "execute",
    "snapshot",
    "take_screenshot",
    "extract",
    "query",
    "wait_for",
]
