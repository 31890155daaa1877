#region Overview
"""
MCP stdio server exposing the shared browser to one agent.

All tools go through the local broker. The broker is started on demand the
first time a tool needs it, so an agent can call any tool first. A tool that
touches a tab the agent has not used before claims it for this session; if
another agent owns the tab the tool fails with `ownership_conflict` and the
agent should pick another tab (browser_get_tabs) or, when asked to, take it
over with browser_claim_tab(force=True).
"""
#endregion

#region Imports
import logging
import sys
from typing import Optional
from mcp.server.fastmcp import FastMCP
#endregion

#region Import from your package
from browser_broker.config import get_env_config
from browser_broker.decorators import (
    tool_envelope,
    ensure_broker_ready,
)
from browser_broker.tools import broker_info, claims, tabs, interaction, extraction
#endregion

#region Logger
logger = logging.getLogger(__name__)
#endregion

#region FastMCP Initialization
mcp = FastMCP("browser_broker")
#endregion

#region Tools -- Status
@mcp.tool()
@tool_envelope
@ensure_broker_ready(include_diagnostics=True)
async def browser_status() -> str:
    """Check whether the browser extension is connected. Returns connection status and broker counters."""
    return await broker_info.status()


@mcp.tool()
@tool_envelope
async def browser_debug_info() -> str:
    """Return diagnostics about the broker process, socket and this session. Works when the broker is down."""
    return await broker_info.debug_info()
#endregion

#region Tools -- Tabs and ownership
@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_get_tabs() -> str:
    """List all open browser tabs (id, url, title, active, windowId). Never claims a tab."""
    return await tabs.get_tabs()


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_get_active_tab() -> str:
    """Return the id, url and title of the active tab in the current window."""
    return await tabs.get_active_tab()


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_list_claims() -> str:
    """List which session owns which tab. `ownedTabs` are the tabs owned by this agent."""
    return await claims.list_claims()


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_claim_tab(tab_id: int, force: bool = False) -> str:
    """
    Claim a tab for this agent.

    Args:
        tab_id: Browser tab id (see browser_get_tabs).
        force: Take the tab over from another agent. Only do this when explicitly asked to.
    """
    return await claims.claim_tab(tab_id, force=force)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_release_tab(tab_id: int) -> str:
    """Release a tab this agent owns so other agents can use it."""
    return await claims.release_tab(tab_id)
#endregion

#region Tools -- Navigation and interaction
@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_navigate(url: str, tab_id: Optional[int] = None) -> str:
    """
    Navigate to a URL in the browser.

    Args:
        url: Absolute URL to navigate to (e.g., "https://example.com").
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await interaction.navigate(url, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_click(selector: str, index: int = 0, tab_id: Optional[int] = None) -> str:
    """
    Click an element on the page using a CSS selector.

    Args:
        selector: CSS selector for the element. Comma-separated alternatives are tried in order.
        index: Which match to click if several elements match.
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await interaction.click(selector, index=index, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_type(
    selector: str,
    text: str,
    clear: bool = False,
    index: int = 0,
    tab_id: Optional[int] = None,
) -> str:
    """
    Type text into an input element.

    Args:
        selector: CSS selector for the input element.
        text: Text to type.
        clear: Clear the field before typing.
        index: Which match to type into if several elements match.
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await interaction.type_text(selector, text, clear=clear, index=index, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_scroll(
    x: int = 0,
    y: int = 0,
    selector: Optional[str] = None,
    tab_id: Optional[int] = None,
) -> str:
    """
    Scroll the page or scroll an element into view.

    Args:
        x: Horizontal scroll amount in pixels.
        y: Vertical scroll amount in pixels.
        selector: CSS selector to scroll into view instead.
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await interaction.scroll(x=x, y=y, selector=selector, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_wait(ms: int = 1000, tab_id: Optional[int] = None) -> str:
    """Wait for a fixed duration (milliseconds, default 1000)."""
    return await interaction.wait(ms=ms, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_execute(code: str, tab_id: Optional[int] = None) -> str:
    """
    Execute JavaScript in the page context and return the result.

    Note: May fail on pages with a strict Content Security Policy.
    """
    return await interaction.execute(code, tab_id=tab_id)
#endregion

#region Tools -- Page content
@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_snapshot(tab_id: Optional[int] = None) -> str:
    """Get an accessibility-style snapshot: interactive elements with selectors, plus all links on the page."""
    return await extraction.snapshot(tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_screenshot(
    tab_id: Optional[int] = None,
    save: bool = False,
    path: Optional[str] = None,
    return_base64: bool = True,
) -> str:
    """
    Take a screenshot of the visible part of a tab.

    Args:
        tab_id: Optional tab id. Defaults to the active tab.
        save: Save the PNG into the screenshots directory.
        path: File path to save to (implies save). ".png" is appended if missing.
        return_base64: Include the base64 PNG in the response. Large; disable when saving.
    """
    return await extraction.take_screenshot(tab_id=tab_id, save=save, path=path, return_base64=return_base64)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_extract(
    mode: str = "combined",
    pattern: Optional[str] = None,
    flags: str = "i",
    limit: int = 20000,
    tab_id: Optional[int] = None,
) -> str:
    """
    Extract readable content from the page.

    Args:
        mode: "text", "pseudo", "inputs" or "combined".
        pattern: Optional regular expression; only matching text is returned.
        flags: Regular expression flags for pattern.
        limit: Maximum characters of text to return.
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await extraction.extract(mode=mode, pattern=pattern, flags=flags, limit=limit, tab_id=tab_id)


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_query(
    selector: str,
    mode: str = "text",
    attribute: Optional[str] = None,
    property: Optional[str] = None,
    limit: int = 50,
    index: int = 0,
    tab_id: Optional[int] = None,
) -> str:
    """
    Read data from elements matched by a CSS selector.

    Args:
        selector: CSS selector.
        mode: "text", "value", "attribute", "property", "html", "exists" or "list".
        attribute: Attribute name for mode="attribute".
        property: Property name for mode="property".
        limit: Maximum number of elements for mode="list".
        index: Which match to read.
        tab_id: Optional tab id. Defaults to the active tab.
    """
    return await extraction.query(
        selector,
        mode=mode,
        attribute=attribute,
        property=property,
        limit=limit,
        index=index,
        tab_id=tab_id,
    )


@mcp.tool()
@tool_envelope
@ensure_broker_ready
async def browser_wait_for(
    selector: str,
    timeout_ms: int = 10000,
    poll_ms: int = 200,
    tab_id: Optional[int] = None,
) -> str:
    """Wait until an element matching the CSS selector appears in the page."""
    return await extraction.wait_for(selector, timeout_ms=timeout_ms, poll_ms=poll_ms, tab_id=tab_id)
#endregion


def main() -> None:
    config = get_env_config()
    logging.basicConfig(
        level=getattr(logging, str(config["log_level"]).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    mcp.run()


if __name__ == "__main__":
    main()
