"""Navigation and page interaction tool implementations."""

from typing import Optional

from ..context import get_context
from .results import action_payload


async def navigate(url: str, tab_id: Optional[int] = None) -> str:
    """
    Navigate a tab to a URL and wait for it to finish loading.

    Args:
        url: Absolute URL to load
        tab_id: Target tab; defaults to the active tab

    Returns:
        JSON string with ok status, tabId and the extension's message
    """
    result = await get_context().client.call_tool("navigate", {"url": url, "tabId": tab_id})
    return action_payload("navigate", result, url=url)


async def click(selector: str, index: int = 0, tab_id: Optional[int] = None) -> str:
    """
    Click an element matched by a CSS selector.

    Args:
        selector: CSS selector; comma-separated alternatives are tried in order
        index: Which match to click when the selector matches several elements
        tab_id: Target tab; defaults to the active tab
    """
    result = await get_context().client.call_tool(
        "click", {"selector": selector, "index": index, "tabId": tab_id}
    )
    return action_payload("click", result, selector=selector)


async def type_text(
    selector: str,
    text: str,
    clear: bool = False,
    index: int = 0,
    tab_id: Optional[int] = None,
) -> str:
    result = await get_context().client.call_tool(
        "type",
        {"selector": selector, "text": text, "clear": clear, "index": index, "tabId": tab_id},
    )
    return action_payload("type", result, selector=selector)


async def scroll(
    x: int = 0,
    y: int = 0,
    selector: Optional[str] = None,
    tab_id: Optional[int] = None,
) -> str:
    """
    Scroll the page, or scroll an element into view when a selector is given.

    Args:
        x: Horizontal scroll amount in pixels (positive = right)
        y: Vertical scroll amount in pixels (positive = down)
        selector: Element to scroll into view instead of scrolling by (x, y)
        tab_id: Target tab; defaults to the active tab
    """
    result = await get_context().client.call_tool(
        "scroll", {"x": int(x), "y": int(y), "selector": selector, "tabId": tab_id}
    )
    return action_payload("scroll", result, x=int(x), y=int(y))


async def wait(ms: int = 1000, tab_id: Optional[int] = None) -> str:
    result = await get_context().client.call_tool("wait", {"ms": int(ms), "tabId": tab_id})
    return action_payload("wait", result, ms=int(ms))


async def execute(code: str, tab_id: Optional[int] = None) -> str:
    """Run JavaScript in the page and return its (JSON-decoded) result."""
    result = await get_context().client.call_tool("execute_script", {"code": code, "tabId": tab_id})
    return action_payload("execute_script", result, decode=True)
