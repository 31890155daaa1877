"""Error taxonomy shared by the broker, its clients and the native host.

Every error carries a stable ``code`` that travels on the wire next to the
human-readable message, so a client can rebuild the same exception type.
"""

from typing import Optional


class BrokerError(Exception):
    """Base class for every failure reported to a session."""

    code = "broker_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


class OwnershipConflict(BrokerError):
    """Tab is owned by another session."""

    code = "ownership_conflict"

    def __init__(self, tab_id: Optional[int] = None, owner: Optional[str] = None, message: str = ""):
        self.tab_id = tab_id
        self.owner = owner
        if not message:
            message = f"Tab {tab_id} is owned by another session ({owner})"
        super().__init__(message)


class BridgeOffline(BrokerError):
    """Chrome extension is not connected (native host offline)."""

    code = "bridge_offline"


class CallTimeout(BrokerError):
    """Timed out waiting for bridge."""

    code = "call_timeout"


class BridgeDisconnected(BrokerError):
    """Bridge disconnected."""

    code = "bridge_disconnected"


class ProtocolError(BrokerError):
    """Malformed or unrecognized message."""

    code = "protocol_error"

    def __init__(self, message: str = "", request_id: Optional[int] = None):
        self.request_id = request_id
        super().__init__(message)


class NoActiveTab(BrokerError):
    """Could not determine active tab."""

    code = "no_active_tab"


class ToolError(BrokerError):
    """The extension reported a failure while running a tool."""

    code = "tool_error"


class BrokerUnavailable(BrokerError):
    """Broker is not reachable."""

    code = "broker_unavailable"


_BY_CODE = {
    cls.code: cls
    for cls in (
        BridgeOffline,
        CallTimeout,
        BridgeDisconnected,
        ProtocolError,
        NoActiveTab,
        ToolError,
        BrokerUnavailable,
    )
}


def error_from_code(code: Optional[str], message: str) -> BrokerError:
    """Rebuild the exception a broker reported as ``{code, error}``."""
    if code == OwnershipConflict.code:
        return OwnershipConflict(message=message)
    cls = _BY_CODE.get(code or "", BrokerError)
    return cls(message)


def error_code(err: BaseException) -> str:
    return getattr(err, "code", BrokerError.code)


__all__ = [
    "BrokerError",
    "OwnershipConflict",
    "BridgeOffline",
    "CallTimeout",
    "BridgeDisconnected",
    "ProtocolError",
    "NoActiveTab",
    "ToolError",
    "BrokerUnavailable",
    "error_from_code",
    "error_code",
]
