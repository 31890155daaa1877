"""Tab ownership tool implementations."""

import json
from ..context import get_context


async def list_claims() -> str:
    ctx = get_context()
    claims = await ctx.client.list_claims()
    mine = [c["tabId"] for c in claims if c.get("sessionId") == ctx.session_id]
    return json.dumps({"ok": True, "sessionId": ctx.session_id, "claims": claims, "ownedTabs": mine})


async def claim_tab(tab_id: int, force: bool = False) -> str:
    """
    Claim a tab for this session.

    Args:
        tab_id: Browser tab id
        force: Take the tab over even if another session owns it
    """
    ctx = get_context()
    data = await ctx.client.claim_tab(tab_id, force=force)
    return json.dumps({"ok": True, "action": "claim_tab", **(data or {})})


async def release_tab(tab_id: int) -> str:
    ctx = get_context()
    data = await ctx.client.release_tab(tab_id)
    return json.dumps({"ok": True, "action": "release_tab", **(data or {})})
