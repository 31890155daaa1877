"""Native messaging host: the bridge between the browser extension and the broker.

Chrome starts this process and talks to it over stdin/stdout using native
messaging framing (a 4-byte native-endian length, then UTF-8 JSON). The host
connects to the broker as the `native-host` role and relays:

    broker  --to_extension-->  host  --frame-->  extension
    broker  <-from_extension-  host  <-frame--   extension

Nothing may be printed to stdout except frames; logs go to stderr.
"""

import argparse
import asyncio
import contextlib
import json
import logging
import struct
import sys
from typing import Any, BinaryIO, Optional

from .client.launcher import ensure_broker_running
from .config import get_env_config
from .constants import (
    NATIVE_HOST_ROLE,
    NATIVE_MAX_INBOUND_BYTES,
    NATIVE_MAX_OUTBOUND_BYTES,
    STREAM_LIMIT_BYTES,
)
from .errors import BrokerUnavailable
from .protocol import decode_line, encode_line, from_extension, hello, tool_error_response

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("@I")


class NativeMessageTooLarge(ValueError):
    pass


def encode_native_message(message: Any) -> bytes:
    """Frame `message` for delivery to the extension."""
    body = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if len(body) > NATIVE_MAX_OUTBOUND_BYTES:
        raise NativeMessageTooLarge(
            f"native message of {len(body)} bytes exceeds {NATIVE_MAX_OUTBOUND_BYTES}"
        )
    return _HEADER.pack(len(body)) + body


async def read_native_message(reader: asyncio.StreamReader) -> Optional[Any]:
    """
    Read one framed message from the extension.

    Returns:
        The decoded message, or None at a clean end of stream.

    Raises:
        asyncio.IncompleteReadError: if the stream ends inside a frame.
        NativeMessageTooLarge: if the declared length is implausible.
        ValueError: if the body is not valid JSON.
    """
    try:
        header = await reader.readexactly(_HEADER.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise
    (length,) = _HEADER.unpack(header)
    if length > NATIVE_MAX_INBOUND_BYTES:
        raise NativeMessageTooLarge(f"native message of {length} bytes exceeds {NATIVE_MAX_INBOUND_BYTES}")
    body = await reader.readexactly(length)
    return json.loads(body.decode("utf-8"))


class NativeHost:
    """Relays messages between one extension (stdio) and the broker (socket)."""

    def __init__(
        self,
        extension_reader: asyncio.StreamReader,
        extension_out: BinaryIO,
        broker_reader: asyncio.StreamReader,
        broker_writer: Any,
    ) -> None:
        self.extension_reader = extension_reader
        self.extension_out = extension_out
        self.broker_reader = broker_reader
        self.broker_writer = broker_writer

    def send_to_extension(self, message: Any) -> None:
        self.extension_out.write(encode_native_message(message))
        self.extension_out.flush()

    def send_to_broker(self, message: dict) -> None:
        self.broker_writer.write(encode_line(message))

    def handle_broker_message(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            return
        kind = msg.get("type")
        if kind == "to_extension":
            message = msg.get("message")
            try:
                self.send_to_extension(message)
            except NativeMessageTooLarge as e:
                logger.error(f"Cannot deliver call to extension: {e}")
                call_id = message.get("id") if isinstance(message, dict) else None
                if call_id is not None:
                    self.send_to_broker(from_extension(tool_error_response(call_id, str(e))))
        elif kind == "host_ready":
            claims = msg.get("claims") or []
            logger.info(f"Broker ready ({len(claims)} live claim(s))")
        else:
            logger.debug(f"Ignoring broker message {kind!r}")

    def handle_extension_message(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            logger.debug("Ignoring non-object message from extension")
            return
        self.send_to_broker(from_extension(msg))

    async def pump_extension(self) -> None:
        """Extension -> broker, until stdin closes."""
        while True:
            try:
                msg = await read_native_message(self.extension_reader)
            except NativeMessageTooLarge:
                raise  # framing is lost
            except ValueError as e:
                logger.warning(f"Dropping malformed message from extension: {e}")
                continue
            if msg is None:
                logger.info("Extension closed the native port")
                return
            self.handle_extension_message(msg)
            await self.broker_writer.drain()

    async def pump_broker(self) -> None:
        """Broker -> extension, until the broker closes the socket."""
        while True:
            line = await self.broker_reader.readline()
            if not line:
                logger.warning("Broker closed the connection")
                return
            try:
                msg = decode_line(line)
            except ValueError:
                continue
            self.handle_broker_message(msg)

    async def run(self) -> None:
        self.send_to_broker(hello(NATIVE_HOST_ROLE))
        await self.broker_writer.drain()

        tasks = [
            asyncio.ensure_future(self.pump_extension()),
            asyncio.ensure_future(self.pump_broker()),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, (asyncio.IncompleteReadError, ConnectionError)):
                    raise exc
        finally:
            self.broker_writer.close()


async def _stdin_reader() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=NATIVE_MAX_INBOUND_BYTES)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin.buffer)
    return reader


async def run_native_host(config: Optional[dict] = None) -> None:
    if config is None:
        config = get_env_config()
    socket_path = await ensure_broker_running(config)
    broker_reader, broker_writer = await asyncio.open_unix_connection(socket_path, limit=STREAM_LIMIT_BYTES)
    host = NativeHost(
        extension_reader=await _stdin_reader(),
        extension_out=sys.stdout.buffer,
        broker_reader=broker_reader,
        broker_writer=broker_writer,
    )
    logger.info(f"Native host connected to broker at {socket_path}")
    await host.run()


def main(argv=None) -> None:
    """Entry point launched by the browser through the native messaging manifest."""
    config = get_env_config()

    parser = argparse.ArgumentParser(description="Native messaging host for the browser broker")
    # Chrome passes the calling extension origin (and on Windows a window handle).
    parser.add_argument("origin", nargs="*", help=argparse.SUPPRESS)
    parser.add_argument("--log-level", default=config["log_level"])
    args, _ = parser.parse_known_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if args.origin:
        logger.info(f"Started by {args.origin[0]}")

    try:
        asyncio.run(run_native_host(config))
    except KeyboardInterrupt:
        pass
    except BrokerUnavailable as e:
        logger.error(f"Broker unavailable: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Native host error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
