"""Shape extension results into the JSON payloads returned by MCP tools."""

import json
from typing import Any, Optional, Tuple


def unwrap(result: Any) -> Tuple[Optional[int], Any]:
    """
    Split an extension result into (tabId, content).

    The extension answers `{tabId, content}`; anything else is treated as bare
    content with no tab.
    """
    if isinstance(result, dict) and "content" in result:
        tab_id = result.get("tabId")
        return (tab_id if isinstance(tab_id, int) and not isinstance(tab_id, bool) else None), result["content"]
    return None, result


def decode_content(content: Any) -> Any:
    """Extension tools often return JSON text; decode it when possible."""
    if isinstance(content, str):
        try:
            return json.loads(content)
        except ValueError:
            return content
    return content


def action_payload(action: str, result: Any, decode: bool = False, **extra: Any) -> str:
    tab_id, content = unwrap(result)
    payload = {"ok": True, "action": action, "tabId": tab_id}
    payload.update({k: v for k, v in extra.items() if v is not None})
    payload["content"] = decode_content(content) if decode else content
    return json.dumps(payload, ensure_ascii=False)


__all__ = ["unwrap", "decode_content", "action_payload"]
