"""Session client: one agent's connection to the local broker."""

import asyncio
import contextlib
import itertools
import uuid
from typing import Any, Dict, Optional

from ..constants import REQUEST_TIMEOUT_SECS, SESSION_ROLE, STREAM_LIMIT_BYTES
from ..errors import BrokerUnavailable, CallTimeout, error_from_code
from ..protocol import decode_line, encode_line, hello, request

import logging
logger = logging.getLogger(__name__)


def make_session_id() -> str:
    """Create a unique session identifier."""
    return f"session:{uuid.uuid4().hex}"


class BrokerClient:
    """
    Talks to the broker on behalf of one session.

    Requests may be issued concurrently; answers are matched by id by a
    background reader task. Every failure the broker reports is raised as the
    matching BrokerError subclass.
    """

    def __init__(
        self,
        socket_path: str,
        session_id: Optional[str] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECS,
    ) -> None:
        self.socket_path = socket_path
        self.session_id = session_id or make_session_id()
        self.request_timeout = request_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)

    @property
    def connected(self) -> bool:
        return (
            self._writer is not None
            and not self._writer.is_closing()
            and self._read_task is not None
            and not self._read_task.done()
        )

    async def connect(self) -> "BrokerClient":
        try:
            self._reader, self._writer = await asyncio.open_unix_connection(
                self.socket_path, limit=STREAM_LIMIT_BYTES
            )
        except (FileNotFoundError, ConnectionError, OSError) as e:
            raise BrokerUnavailable(f"Cannot connect to broker at {self.socket_path}: {e}") from e

        self._writer.write(encode_line(hello(SESSION_ROLE, self.session_id)))
        await self._writer.drain()
        self._read_task = asyncio.create_task(self._read_loop())
        logger.debug(f"Connected to broker as {self.session_id}")
        return self

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            with contextlib.suppress(Exception):
                await self._writer.wait_closed()
        if self._read_task is not None:
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._read_task
        self._fail_pending(BrokerUnavailable("Broker connection closed"))
        self._writer = None
        self._read_task = None

    async def __aenter__(self) -> "BrokerClient":
        return await self.connect()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _read_loop(self) -> None:
        assert self._reader is not None
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                try:
                    msg = decode_line(line)
                except ValueError:
                    logger.debug("Ignoring unparseable line from broker")
                    continue
                self._handle_message(msg)
        except (ConnectionError, OSError) as e:
            logger.debug(f"Broker connection error: {e}")
        finally:
            self._fail_pending(BrokerUnavailable("Lost connection to broker"))

    def _handle_message(self, msg: Any) -> None:
        if not isinstance(msg, dict) or msg.get("type") != "response":
            return
        fut = self._pending.pop(msg.get("id"), None)
        if fut is None or fut.done():
            return
        if msg.get("ok"):
            fut.set_result(msg.get("data"))
        else:
            fut.set_exception(error_from_code(msg.get("code"), str(msg.get("error") or "Request failed")))

    def _fail_pending(self, err: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(err)

    async def request(self, op: str, timeout: Optional[float] = None, **fields: Any) -> Any:
        """Send one request and wait for its `data`."""
        if not self.connected:
            raise BrokerUnavailable("Not connected to broker")

        request_id = next(self._ids)
        fut = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        self._writer.write(encode_line(request(request_id, op, sessionId=self.session_id, **fields)))
        try:
            await self._writer.drain()
            return await asyncio.wait_for(fut, timeout=timeout or self.request_timeout)
        except asyncio.TimeoutError:
            raise CallTimeout(f"Timed out waiting for broker to answer {op}") from None
        except (ConnectionError, OSError) as e:
            raise BrokerUnavailable(f"Lost connection to broker: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def status(self) -> dict:
        return await self.request("status")

    async def list_claims(self) -> list:
        data = await self.request("list_claims")
        return (data or {}).get("claims", [])

    async def claim_tab(self, tab_id: int, force: bool = False) -> dict:
        return await self.request("claim_tab", tabId=tab_id, force=bool(force))

    async def release_tab(self, tab_id: int) -> dict:
        return await self.request("release_tab", tabId=tab_id)

    async def call_tool(self, tool: str, args: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        """Run a browser tool through the broker and return the extension's result."""
        clean = {k: v for k, v in (args or {}).items() if v is not None}
        return await self.request("tool", timeout=timeout, tool=tool, args=clean)


__all__ = [
    "BrokerClient",
    "make_session_id",
]
