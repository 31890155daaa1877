"""Wire protocol between the broker, session clients and the native bridge.

Uses newline-delimited JSON over a Unix socket, one message per line in both
directions. Incoming messages are parsed into a closed set of dataclasses;
anything that does not match raises ``ProtocolError``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .constants import REQUEST_OPS
from .errors import BrokerError, ProtocolError, error_code


# ============================================================================
# Inbound message variants
# ============================================================================

@dataclass
class Hello:
    """Handshake declaring the role of a connection."""

    role: str
    session_id: Optional[str] = None


@dataclass
class ToolResponse:
    """Result of a forwarded tool call, relayed by the bridge."""

    call_id: int
    result: Any = None
    error: Any = None


@dataclass
class StatusRequest:
    request_id: int
    session_id: Optional[str] = None


@dataclass
class ListClaimsRequest:
    request_id: int
    session_id: Optional[str] = None


@dataclass
class ClaimTabRequest:
    request_id: int
    tab_id: int
    force: bool = False
    session_id: Optional[str] = None


@dataclass
class ReleaseTabRequest:
    request_id: int
    tab_id: int
    session_id: Optional[str] = None


@dataclass
class ToolRequest:
    request_id: int
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None


Request = Union[StatusRequest, ListClaimsRequest, ClaimTabRequest, ReleaseTabRequest, ToolRequest]
Message = Union[Hello, ToolResponse, Request]

REQUEST_TYPES = (StatusRequest, ListClaimsRequest, ClaimTabRequest, ReleaseTabRequest, ToolRequest)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_tab_id(value: Any) -> bool:
    """Tab ids are plain integers; JSON booleans do not count."""
    return _is_int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ============================================================================
# Parsing
# ============================================================================

def _parse_hello(raw: dict) -> Hello:
    return Hello(role=str(raw.get("role") or "unknown"), session_id=_optional_str(raw.get("sessionId")))


def _parse_from_extension(raw: dict) -> ToolResponse:
    message = raw.get("message")
    if not isinstance(message, dict) or message.get("type") != "tool_response":
        raise ProtocolError("Unsupported extension message")
    call_id = message.get("id")
    if not _is_int(call_id):
        raise ProtocolError("tool_response without numeric id")
    return ToolResponse(call_id=call_id, result=message.get("result"), error=message.get("error"))


def _require_tab_id(raw: dict, request_id: int) -> int:
    tab_id = raw.get("tabId")
    if not is_tab_id(tab_id):
        raise ProtocolError("tabId is required", request_id=request_id)
    return tab_id


def _parse_request(raw: dict) -> Request:
    request_id = raw.get("id")
    if not _is_int(request_id):
        # Without an id there is nobody to answer.
        raise ProtocolError("request without numeric id")

    op = raw.get("op")
    session_id = _optional_str(raw.get("sessionId"))
    if op not in REQUEST_OPS:
        raise ProtocolError(f"Unknown op: {op}", request_id=request_id)

    if op == "status":
        return StatusRequest(request_id=request_id, session_id=session_id)
    if op == "list_claims":
        return ListClaimsRequest(request_id=request_id, session_id=session_id)
    if op == "claim_tab":
        return ClaimTabRequest(
            request_id=request_id,
            tab_id=_require_tab_id(raw, request_id),
            force=bool(raw.get("force")),
            session_id=session_id,
        )
    if op == "release_tab":
        return ReleaseTabRequest(
            request_id=request_id,
            tab_id=_require_tab_id(raw, request_id),
            session_id=session_id,
        )
    if op == "tool":
        tool = raw.get("tool")
        if not isinstance(tool, str) or not tool:
            raise ProtocolError("Missing tool", request_id=request_id)
        args = raw.get("args")
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ProtocolError("args must be an object", request_id=request_id)
        return ToolRequest(request_id=request_id, tool=tool, args=dict(args), session_id=session_id)

    raise AssertionError(f"unhandled op {op}")


def parse_message(raw: Any) -> Message:
    """
    Turn a decoded JSON value into one of the inbound message variants.

    Raises:
        ProtocolError: for anything that is not a recognized message. When the
            message was a request with a usable id, ``request_id`` is set so the
            caller can answer it.
    """
    if not isinstance(raw, dict):
        raise ProtocolError("message must be a JSON object")

    kind = raw.get("type")
    if kind == "hello":
        return _parse_hello(raw)
    if kind == "from_extension":
        return _parse_from_extension(raw)
    if kind == "request":
        return _parse_request(raw)
    raise ProtocolError(f"Unknown message type: {kind!r}")


def decode_line(line: bytes) -> Any:
    """Decode one JSON line. Raises ValueError on malformed input."""
    return json.loads(line.decode("utf-8"))


def encode_line(message: dict) -> bytes:
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


# ============================================================================
# Outbound messages
# ============================================================================

def hello(role: str, session_id: Optional[str] = None) -> dict:
    msg = {"type": "hello", "role": role}
    if session_id is not None:
        msg["sessionId"] = session_id
    return msg


def host_ready(claims: List[dict]) -> dict:
    return {"type": "host_ready", "claims": claims}


def to_extension(call_id: int, tool: str, args: Dict[str, Any]) -> dict:
    return {
        "type": "to_extension",
        "message": {"type": "tool_request", "id": call_id, "tool": tool, "args": args},
    }


def from_extension(message: dict) -> dict:
    return {"type": "from_extension", "message": message}


def tool_error_response(call_id: int, content: str) -> dict:
    """A tool_response as the extension would send it for a failed call."""
    return {"type": "tool_response", "id": call_id, "error": {"content": content}}


def request(request_id: int, op: str, **fields: Any) -> dict:
    msg = {"type": "request", "id": request_id, "op": op}
    msg.update({k: v for k, v in fields.items() if v is not None})
    return msg


def response_ok(request_id: int, data: Any = None) -> dict:
    return {"type": "response", "id": request_id, "ok": True, "data": data}


def response_error(request_id: int, err: BaseException) -> dict:
    message = err.message if isinstance(err, BrokerError) else (str(err) or err.__class__.__name__)
    return {
        "type": "response",
        "id": request_id,
        "ok": False,
        "error": message,
        "code": error_code(err),
    }


__all__ = [
    "Hello",
    "ToolResponse",
    "StatusRequest",
    "ListClaimsRequest",
    "ClaimTabRequest",
    "ReleaseTabRequest",
    "ToolRequest",
    "Request",
    "Message",
    "REQUEST_TYPES",
    "is_tab_id",
    "parse_message",
    "decode_line",
    "encode_line",
    "hello",
    "host_ready",
    "to_extension",
    "from_extension",
    "tool_error_response",
    "request",
    "response_ok",
    "response_error",
]
