"""Page snapshot, screenshot and content extraction tool implementations."""

import base64
import datetime
import json
import re
from typing import Optional

from ..config import screenshot_path
from ..context import get_context
from .results import action_payload, unwrap

_DATA_URL = re.compile(r"^data:image/\w+;base64,")


async def snapshot(tab_id: Optional[int] = None) -> str:
    """Accessibility-style snapshot: interactive elements with selectors, plus links."""
    result = await get_context().client.call_tool("snapshot", {"tabId": tab_id})
    return action_payload("snapshot", result, decode=True)


async def take_screenshot(
    tab_id: Optional[int] = None,
    save: bool = False,
    path: Optional[str] = None,
    return_base64: bool = True,
) -> str:
    """
    Capture the visible area of a tab as PNG.

    Args:
        tab_id: Target tab; defaults to the active tab
        save: Save the image to the screenshots directory
        path: File to save to (implies save); relative paths land in the screenshots directory
        return_base64: Include the base64 image data in the response

    Returns:
        JSON string with ok status, tabId, saved path and optional base64 PNG
    """
    ctx = get_context()
    result = await ctx.client.call_tool("screenshot", {"tabId": tab_id})
    tab, content = unwrap(result)

    if not isinstance(content, str) or not _DATA_URL.match(content):
        return json.dumps({"ok": False, "error": "screenshot_failed", "tabId": tab, "message": str(content or "")})

    data = _DATA_URL.sub("", content)
    saved_to = None
    if save or path:
        if not path:
            stamp = datetime.datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
            path = f"screenshot-{stamp}"
        saved_to = screenshot_path(ctx.config["screenshots_dir"], path)
        with open(saved_to, "wb") as f:
            f.write(base64.b64decode(data))

    payload = {"ok": True, "action": "screenshot", "tabId": tab, "saved_to": saved_to, "mime_type": "image/png"}
    if return_base64:
        payload["base64"] = data
    return json.dumps(payload)


async def extract(
    mode: str = "combined",
    pattern: Optional[str] = None,
    flags: str = "i",
    limit: int = 20000,
    tab_id: Optional[int] = None,
) -> str:
    """
    Extract readable page content.

    Args:
        mode: "text", "pseudo", "inputs" or "combined"
        pattern: Optional regular expression; only matching lines are returned
        flags: Regular expression flags for `pattern`
        limit: Maximum characters of text to return
        tab_id: Target tab; defaults to the active tab
    """
    result = await get_context().client.call_tool(
        "extract",
        {"mode": mode, "pattern": pattern, "flags": flags, "limit": int(limit), "tabId": tab_id},
    )
    return action_payload("extract", result, decode=True)


async def query(
    selector: str,
    mode: str = "text",
    attribute: Optional[str] = None,
    property: Optional[str] = None,
    limit: int = 50,
    index: int = 0,
    tab_id: Optional[int] = None,
) -> str:
    result = await get_context().client.call_tool(
        "query",
        {
            "selector": selector,
            "mode": mode,
            "attribute": attribute,
            "property": property,
            "limit": int(limit),
            "index": int(index),
            "tabId": tab_id,
        },
    )
    return action_payload("query", result, decode=True, selector=selector)


async def wait_for(
    selector: str,
    timeout_ms: int = 10000,
    poll_ms: int = 200,
    tab_id: Optional[int] = None,
) -> str:
    """Wait until `selector` matches an element in the page."""
    # The broker must outlive the extension's own wait.
    timeout = max(timeout_ms / 1000.0 + 5.0, get_context().config.get("request_timeout") or 0)
    result = await get_context().client.call_tool(
        "wait_for",
        {"selector": selector, "timeoutMs": int(timeout_ms), "pollMs": int(poll_ms), "tabId": tab_id},
        timeout=timeout,
    )
    return action_payload("wait_for", result, decode=True, selector=selector)
