"""Pending-call table: in-flight tool calls awaiting an answer from the bridge."""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..constants import CALL_TIMEOUT_SECS
from ..errors import CallTimeout

import logging
logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    call_id: int
    resolve: Callable[[Any], None]
    reject: Callable[[BaseException], None]
    session_id: Optional[str]
    deadline: float
    timer: Optional[asyncio.TimerHandle] = None


class PendingCallTable:
    """
    Correlates call ids with the callers waiting for them.

    Each entry is settled exactly once: `resolve`, `reject`, `fail_all` and the
    deadline timer all pop the entry before invoking its callback, so a late
    response after a timeout (or a duplicate response) finds nothing and is a
    no-op.

    Must be used from within the running event loop.
    """

    def __init__(self, default_timeout: float = CALL_TIMEOUT_SECS) -> None:
        self.default_timeout = default_timeout
        self._calls: Dict[int, PendingCall] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: int) -> bool:
        return call_id in self._calls

    def next_id(self) -> int:
        """Allocate a fresh call id; ids are never reused."""
        return next(self._ids)

    def register(
        self,
        call_id: int,
        resolve: Callable[[Any], None],
        reject: Callable[[BaseException], None],
        session_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> PendingCall:
        if call_id in self._calls:
            raise ValueError(f"call id {call_id} is already pending")

        loop = asyncio.get_running_loop()
        timeout = self.default_timeout if timeout is None else timeout
        entry = PendingCall(
            call_id=call_id,
            resolve=resolve,
            reject=reject,
            session_id=session_id,
            deadline=loop.time() + timeout,
        )
        entry.timer = loop.call_later(timeout, self._expire, call_id)
        self._calls[call_id] = entry
        return entry

    def _pop(self, call_id: int) -> Optional[PendingCall]:
        entry = self._calls.pop(call_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
        return entry

    def resolve(self, call_id: int, result: Any) -> bool:
        """Settle `call_id` successfully. Unknown ids are ignored (returns False)."""
        entry = self._pop(call_id)
        if entry is None:
            logger.debug(f"Ignoring result for unknown call {call_id}")
            return False
        entry.resolve(result)
        return True

    def reject(self, call_id: int, error: BaseException) -> bool:
        """Settle `call_id` with `error`. Unknown ids are ignored (returns False)."""
        entry = self._pop(call_id)
        if entry is None:
            logger.debug(f"Ignoring error for unknown call {call_id}: {error}")
            return False
        entry.reject(error)
        return True

    def fail_all(self, error: BaseException) -> int:
        """Reject every pending call with `error` and empty the table."""
        entries = list(self._calls.values())
        self._calls.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
            entry.reject(error)
        if entries:
            logger.warning(f"Failed {len(entries)} pending call(s): {error}")
        return len(entries)

    def _expire(self, call_id: int) -> None:
        entry = self._calls.pop(call_id, None)
        if entry is None:
            return
        logger.warning(f"Call {call_id} (session {entry.session_id}) timed out waiting for bridge")
        entry.reject(CallTimeout("Timed out waiting for bridge"))


__all__ = [
    "PendingCall",
    "PendingCallTable",
]
