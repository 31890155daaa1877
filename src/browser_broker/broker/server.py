"""Local broker - multiplexes agent sessions onto the single native bridge.

The broker runs as a long-lived background process listening on an
owner-only Unix socket. Sessions and the native host connect to it, declare
their role with a `hello` line and then exchange newline-delimited JSON.
All state lives in one `Broker` instance on one event loop.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from typing import Optional, Set

from ..config import (
    ensure_private_dir,
    get_env_config,
    remove_pid_file,
    remove_stale_socket,
    restrict_socket,
    write_pid_file,
)
from ..constants import CALL_TIMEOUT_SECS, STREAM_LIMIT_BYTES
from ..errors import BrokerError, ProtocolError
from ..protocol import (
    REQUEST_TYPES,
    Hello,
    ToolResponse,
    decode_line,
    parse_message,
    response_error,
    response_ok,
)
from .connections import Connection, ConnectionRegistry
from .lifecycle import LifecycleManager
from .ownership import OwnershipTable
from .pending import PendingCallTable
from .router import RequestRouter

logger = logging.getLogger(__name__)


class Broker:
    """
    Broker state and message dispatch, independent of the transport.

    Owns the connection registry, the pending-call table and the ownership
    table. Several instances can coexist (tests build one per case).
    """

    def __init__(self, call_timeout: float = CALL_TIMEOUT_SECS) -> None:
        self.registry = ConnectionRegistry()
        self.pending = PendingCallTable(default_timeout=call_timeout)
        self.ownership = OwnershipTable()
        self.router = RequestRouter(self.registry, self.pending, self.ownership)
        self.lifecycle = LifecycleManager(self.registry, self.pending, self.ownership)
        self._tasks: Set[asyncio.Task] = set()

    def connection_opened(self, conn: Connection) -> None:
        self.registry.add(conn)

    def connection_closed(self, conn: Connection) -> None:
        self.lifecycle.on_close(conn)

    def handle_line(self, conn: Connection, line: bytes) -> None:
        """Decode and dispatch one line. Malformed lines are dropped."""
        if not line.strip():
            return
        try:
            raw = decode_line(line)
        except ValueError as e:
            logger.debug(f"Ignoring unparseable line from {conn!r}: {e}")
            return
        self.handle_message(conn, raw)

    def handle_message(self, conn: Connection, raw: object) -> None:
        try:
            msg = parse_message(raw)
        except ProtocolError as e:
            if e.request_id is not None:
                conn.send(response_error(e.request_id, e))
            else:
                logger.debug(f"Ignoring message from {conn!r}: {e}")
            return

        if isinstance(msg, Hello):
            self.lifecycle.on_handshake(conn, msg)
        elif isinstance(msg, ToolResponse):
            self.router.on_tool_response(msg)
        elif isinstance(msg, REQUEST_TYPES):
            task = asyncio.ensure_future(self._serve(conn, msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            raise AssertionError(f"unhandled message variant {type(msg).__name__}")

    async def _serve(self, conn: Connection, request) -> None:
        session_id = request.session_id or conn.session_id
        claimed = []
        try:
            data = await self.router.serve(request, session_id, claimed)
        except asyncio.CancelledError:
            raise
        except BrokerError as e:
            logger.info(f"Request {request.request_id} ({type(request).__name__}) failed: {e}")
            conn.send(response_error(request.request_id, e))
        except Exception as e:
            logger.exception(f"Error serving request {request.request_id} from {conn!r}: {e}")
            conn.send(response_error(request.request_id, e))
        else:
            conn.send(response_ok(request.request_id, data))
        finally:
            if claimed and not conn.is_open and session_id not in self.registry.session_ids():
                # Finished after its session left; drop only what this request auto-claimed.
                for claim in claimed:
                    self.ownership.discard(claim)

    async def drain(self) -> None:
        """Wait for in-flight request tasks (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class BrokerServer:
    """Serves a Broker on a Unix socket."""

    def __init__(self, socket_path: str, broker: Optional[Broker] = None, pid_path: Optional[str] = None) -> None:
        self.socket_path = socket_path
        self.pid_path = pid_path
        self.broker = broker or Broker()
        self._server: Optional[asyncio.AbstractServer] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._handlers: Set[asyncio.Task] = set()

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Read lines from one peer until it disconnects."""
        conn = Connection(writer, peer=str(writer.get_extra_info("peername") or ""))
        self.broker.connection_opened(conn)
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)

        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError as e:
                    # Line longer than the stream limit; the buffer was discarded.
                    logger.warning(f"Dropping oversized line from {conn!r}: {e}")
                    continue
                if not line:
                    break
                self.broker.handle_line(conn, line)
        except (ConnectionError, OSError) as e:
            logger.debug(f"Connection error on {conn!r}: {e}")
        finally:
            self.broker.connection_closed(conn)
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()
            if task is not None:
                self._handlers.discard(task)

    async def start(self) -> None:
        """Bind the socket. Raises OSError if binding fails."""
        socket_dir = os.path.dirname(self.socket_path) or "."
        if not os.path.isdir(socket_dir):
            ensure_private_dir(socket_dir)
        if remove_stale_socket(self.socket_path):
            logger.info(f"Removed stale socket {self.socket_path}")

        self._server = await asyncio.start_unix_server(
            self.handle_connection,
            path=self.socket_path,
            limit=STREAM_LIMIT_BYTES,
        )
        restrict_socket(self.socket_path)
        if self.pid_path:
            write_pid_file(self.pid_path)
        logger.info(f"[browser-broker] listening on {self.socket_path}")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve_forever(self) -> None:
        self._stop_event = asyncio.Event()
        try:
            await self._stop_event.wait()
        finally:
            await self.close()

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            for task in list(self._handlers):
                task.cancel()
            with contextlib.suppress(Exception):
                await self._server.wait_closed()
            self._server = None
            remove_stale_socket(self.socket_path)
            if self.pid_path:
                remove_pid_file(self.pid_path)
            logger.info("Broker stopped")

    async def run(self) -> None:
        await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                pass

        await self.serve_forever()


def main(argv=None) -> None:
    """Main entry point for the broker process."""
    config = get_env_config()

    parser = argparse.ArgumentParser(description="Local browser broker")
    parser.add_argument("--socket", default=config["socket_path"], help="Unix socket path")
    parser.add_argument("--pid-file", default=config["pid_path"], help="Where to write the broker pid")
    parser.add_argument("--call-timeout", type=float, default=config["call_timeout"],
                        help="Seconds to wait for the bridge to answer a call")
    parser.add_argument("--log-level", default=config["log_level"], help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )

    server = BrokerServer(
        socket_path=args.socket,
        broker=Broker(call_timeout=args.call_timeout),
        pid_path=args.pid_file,
    )

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except OSError as e:
        logger.error(f"[browser-broker] cannot listen on {args.socket}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
