# browser_broker/decorators/ensure.py
import json
import inspect
import functools

from ..errors import BrokerUnavailable

import logging
logger = logging.getLogger(__name__)


def _unavailable_payload(err: Exception, include_diagnostics: bool) -> str:
    payload = {
        "ok": False,
        "error": "broker_unavailable",
        "message": (
            f"Browser broker is not reachable ({err}). "
            "It is started automatically; check broker.log in the broker home directory."
        ),
    }
    if include_diagnostics:
        try:
            from ..utils.diagnostics import collect_diagnostics
            payload["diagnostics"] = collect_diagnostics(err)
        except Exception as diag_err:
            logger.debug(f"Could not collect diagnostics: {diag_err}")
    return json.dumps(payload)


def ensure_broker_ready(_func=None, *, include_diagnostics=False):
    """
    Connect this session to the broker (starting it if needed) before the tool runs.

    The wrapped tool can then rely on get_context().client being connected.
    When the broker cannot be reached the tool is not called and a
    `broker_unavailable` JSON payload is returned instead.
    """
    def decorator(fn):
        if not inspect.iscoroutinefunction(fn):
            raise TypeError("ensure_broker_ready only wraps async tools")

        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            from .. import context  # module import, so tests can patch connect_client

            try:
                await context.connect_client()
            except BrokerUnavailable as e:
                logger.warning(f"Broker unavailable: {e}")
                return _unavailable_payload(e, include_diagnostics)

            return await fn(*args, **kwargs)
        return wrapper
    return decorator if _func is None else decorator(_func)
