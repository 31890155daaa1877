# browser_broker/decorators/envelope.py

import os
import json
import asyncio
import inspect
import datetime
import functools
import traceback
from typing import Any, Callable

from ..errors import BrokerError


__all__ = [
    "tool_envelope",
]


def tool_envelope(func: Callable):
    """
    Minimal decorator for MCP tool functions:
      - Works with both async and sync callables.
      - On success: ensures the return value is a string (json.dumps for non-strings).
      - On error: returns a uniform JSON string with a summary and optional traceback.
        Broker errors also carry their stable `code`.
    Environment:
      - Set BROWSER_BROKER_TOOL_ERRORS_TRACEBACK=0 to suppress traceback in error payloads.
    """
    include_tb = os.getenv("BROWSER_BROKER_TOOL_ERRORS_TRACEBACK", "1") not in ("0", "false", "False")

    def _normalize(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, bytes):
            return value.decode("utf-8", "replace")
        try:
            return json.dumps(value, ensure_ascii=False, default=lambda o: getattr(o, "__dict__", repr(o)))
        except (TypeError, ValueError):
            return str(value)

    def _error_payload(err: Exception) -> str:
        tb = traceback.format_exc() if include_tb else None
        payload = {
            "ok": False,
            "summary": f"{err.__class__.__name__}: {err}",
            "error": {
                "type": err.__class__.__name__,
                "message": str(err),
            },
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        if isinstance(err, BrokerError):
            payload["error"]["code"] = err.code
        if tb:
            payload["error"]["traceback"] = tb
        return json.dumps(payload, ensure_ascii=False)

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                # Preserve cooperative cancellation semantics
                raise
            except Exception as e:
                return _error_payload(e)
            return _normalize(result)
        return wrapper
    else:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                return _error_payload(e)
            return _normalize(result)
        return wrapper
