"""Request router: serves session requests and forwards tool calls to the bridge."""

import asyncio
from typing import Any, Dict, List, Optional

from ..constants import ACTIVE_TAB_TOOL, EXEMPT_TOOLS
from ..errors import BridgeOffline, NoActiveTab, ProtocolError, ToolError
from ..protocol import (
    ClaimTabRequest,
    ListClaimsRequest,
    ReleaseTabRequest,
    Request,
    StatusRequest,
    ToolRequest,
    ToolResponse,
    is_tab_id,
    to_extension,
)
from .connections import ConnectionRegistry
from .ownership import Claim, OwnershipTable
from .pending import PendingCallTable

import logging
logger = logging.getLogger(__name__)


def wants_tab(tool: str) -> bool:
    """Whether `tool` targets a specific tab (and so is subject to ownership)."""
    return tool not in EXEMPT_TOOLS


def _settle_result(fut: asyncio.Future, value: Any) -> None:
    if not fut.done():
        fut.set_result(value)


def _settle_error(fut: asyncio.Future, err: BaseException) -> None:
    if not fut.done():
        fut.set_exception(err)


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        error = error.get("content") or error.get("message") or error
    if error in ({}, [], ""):
        return "Tool failed"
    return str(error)


def _result_tab_id(result: Any) -> Optional[int]:
    if isinstance(result, dict) and is_tab_id(result.get("tabId")):
        return result["tabId"]
    return None


class RequestRouter:
    """
    Resolves the tab a request targets, enforces ownership, forwards the call
    to the bridge and relays the answer.

    All table access is synchronous; the only suspension points are the
    awaits on pending bridge calls, so nothing can interleave between an
    ownership check and the forwarding of the same request.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        pending: PendingCallTable,
        ownership: OwnershipTable,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.pending = pending
        self.ownership = ownership
        self.call_timeout = call_timeout

    async def serve(
        self,
        request: Request,
        session_id: Optional[str],
        claimed: Optional[List[Claim]] = None,
    ) -> Any:
        """
        Return the `data` for a successful response or raise a BrokerError.

        Claims created by auto-claim while serving are appended to `claimed`.
        """
        if isinstance(request, StatusRequest):
            return self.status()
        if isinstance(request, ListClaimsRequest):
            return {"claims": self.ownership.snapshot()}
        if isinstance(request, ClaimTabRequest):
            if not session_id:
                raise ProtocolError("sessionId is required", request_id=request.request_id)
            self.ownership.claim(request.tab_id, session_id, force=request.force)
            return {"ok": True, "tabId": request.tab_id, "sessionId": session_id}
        if isinstance(request, ReleaseTabRequest):
            if not session_id:
                raise ProtocolError("sessionId is required", request_id=request.request_id)
            released = self.ownership.release(request.tab_id, session_id)
            return {"ok": True, "tabId": request.tab_id, "released": released}
        if isinstance(request, ToolRequest):
            return await self.handle_tool(request.tool, request.args, session_id, claimed)
        raise ProtocolError(f"Unsupported request {type(request).__name__}")

    def status(self) -> dict:
        return {
            "broker": True,
            "hostConnected": self.registry.bridge_online(),
            "claims": self.ownership.snapshot(),
            "sessions": sorted(self.registry.session_ids()),
            "pendingCalls": len(self.pending),
        }

    async def handle_tool(
        self,
        tool: str,
        args: Dict[str, Any],
        session_id: Optional[str],
        claimed: Optional[List[Claim]] = None,
    ) -> Any:
        args = dict(args or {})
        tab_id = args.get("tabId")
        if not is_tab_id(tab_id):
            tab_id = None

        if wants_tab(tool):
            if tab_id is None:
                tab_id = await self.resolve_active_tab(session_id)
            # Nothing may suspend between this check and the forward below.
            self.ownership.ensure_allowed(tab_id, session_id)
            args["tabId"] = tab_id

        result = await self.call_bridge(tool, args, session_id)

        used_tab_id = _result_tab_id(result)
        if used_tab_id is None:
            used_tab_id = tab_id
        if used_tab_id is not None and session_id:
            claim = self.ownership.auto_claim(used_tab_id, session_id)
            if claim is not None and claimed is not None:
                claimed.append(claim)

        return result

    async def resolve_active_tab(self, session_id: Optional[str]) -> int:
        result = await self.call_bridge(ACTIVE_TAB_TOOL, {}, session_id)
        tab_id = _result_tab_id(result)
        if tab_id is None:
            raise NoActiveTab("Could not determine active tab")
        return tab_id

    def call_bridge(self, tool: str, args: Dict[str, Any], session_id: Optional[str]) -> "asyncio.Future":
        """
        Send one tool call downstream and return a future for its result.

        Fails immediately with BridgeOffline when no bridge is connected, so no
        call is ever registered that could not be answered.
        """
        bridge = self.registry.bridge
        if bridge is None or not bridge.is_open:
            raise BridgeOffline("Chrome extension is not connected (native host offline)")

        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        call_id = self.pending.next_id()
        self.pending.register(
            call_id,
            lambda value: _settle_result(fut, value),
            lambda err: _settle_error(fut, err),
            session_id=session_id,
            timeout=self.call_timeout,
        )
        if not bridge.send(to_extension(call_id, tool, args)):
            self.pending.reject(call_id, BridgeOffline("Chrome extension is not connected (native host offline)"))
        else:
            logger.debug(f"-> bridge call {call_id}: {tool} (session {session_id})")
        return fut

    def on_tool_response(self, response: ToolResponse) -> None:
        if response.error is not None:
            self.pending.reject(response.call_id, ToolError(_error_text(response.error)))
        else:
            self.pending.resolve(response.call_id, response.result)


__all__ = [
    "RequestRouter",
    "wants_tab",
]
