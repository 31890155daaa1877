"""End-to-end: broker, session clients and a fake bridge over a real Unix socket."""

import asyncio
import json
import os
import shutil
import stat
import tempfile

import pytest

from browser_broker.broker import Broker, BrokerServer
from browser_broker.client import BrokerClient
from browser_broker.errors import BridgeOffline, OwnershipConflict, ToolError
from browser_broker.protocol import encode_line, from_extension, hello

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture
def sock_dir():
    # AF_UNIX paths are short; keep them out of deep pytest tmp dirs.
    path = tempfile.mkdtemp(prefix="bb-")
    yield path
    shutil.rmtree(path, ignore_errors=True)


class FakeExtension:
    """Connects as the native host and answers tool calls like the extension."""

    def __init__(self, socket_path):
        self.socket_path = socket_path
        self.calls = []
        self.ready = None
        self._task = None

    async def start(self):
        self.reader, self.writer = await asyncio.open_unix_connection(self.socket_path)
        self.writer.write(encode_line(hello("native-host")))
        await self.writer.drain()
        self.ready = json.loads(await self.reader.readline())
        self._task = asyncio.ensure_future(self._serve())

    async def _serve(self):
        while True:
            line = await self.reader.readline()
            if not line:
                return
            msg = json.loads(line)
            if msg.get("type") != "to_extension":
                continue
            call = msg["message"]
            self.calls.append(call)
            self.writer.write(encode_line(from_extension(self.answer(call))))
            await self.writer.drain()

    def answer(self, call):
        tool, args = call["tool"], call["args"]
        if tool == "get_active_tab":
            return {"type": "tool_response", "id": call["id"], "result": {"tabId": 1, "content": {"tabId": 1}}}
        if tool == "click" and args.get("selector") == "#missing":
            return {"type": "tool_response", "id": call["id"], "error": {"content": "Element not found"}}
        return {
            "type": "tool_response",
            "id": call["id"],
            "result": {"tabId": args.get("tabId"), "content": f"{tool} done"},
        }

    async def close(self):
        self.writer.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except (asyncio.CancelledError, ConnectionError):
                pass


def test_socket_permissions_and_cleanup(event_loop, sock_dir):
    socket_path = os.path.join(sock_dir, "broker.sock")
    pid_path = os.path.join(sock_dir, "broker.pid")
    # Leftover from a previous run
    with open(socket_path, "w") as f:
        f.write("stale")

    async def scenario():
        server = BrokerServer(socket_path, broker=Broker(call_timeout=2), pid_path=pid_path)
        await server.start()
        try:
            mode = stat.S_IMODE(os.stat(socket_path).st_mode)
            assert stat.S_ISSOCK(os.stat(socket_path).st_mode)
            assert mode == 0o600
            with open(pid_path) as f:
                assert int(f.read()) == os.getpid()
        finally:
            await server.close()
        assert not os.path.exists(socket_path)
        assert not os.path.exists(pid_path)

    event_loop.run_until_complete(scenario())


def test_two_sessions_share_one_bridge(event_loop, sock_dir):
    socket_path = os.path.join(sock_dir, "broker.sock")

    async def scenario():
        server = BrokerServer(socket_path, broker=Broker(call_timeout=2))
        await server.start()
        ext = FakeExtension(socket_path)
        a = BrokerClient(socket_path, session_id="session:a", request_timeout=5)
        b = BrokerClient(socket_path, session_id="session:b", request_timeout=5)
        try:
            await a.connect()
            await b.connect()

            with pytest.raises(BridgeOffline):
                await a.call_tool("click", {"tabId": 7, "selector": "#go"})

            await ext.start()
            assert ext.ready == {"type": "host_ready", "claims": []}

            result = await a.call_tool("click", {"tabId": 7, "selector": "#go"})
            assert result == {"tabId": 7, "content": "click done"}

            with pytest.raises(OwnershipConflict) as excinfo:
                await b.call_tool("click", {"tabId": 7, "selector": "#go"})
            assert "session:a" in str(excinfo.value)

            with pytest.raises(ToolError):
                await b.call_tool("click", {"tabId": 8, "selector": "#missing"})

            # Active tab resolution and first-touch claim for b
            await b.call_tool("navigate", {"url": "https://example.com"})
            assert ext.calls[-1]["args"] == {"url": "https://example.com", "tabId": 1}

            claims = await a.list_claims()
            assert [(c["tabId"], c["sessionId"]) for c in claims] == [(1, "session:b"), (7, "session:a")]

            await b.claim_tab(7, force=True)
            status = await a.status()
            assert status["hostConnected"] is True
            assert sorted(status["sessions"]) == ["session:a", "session:b"]

            await b.close()
            for _ in range(50):
                if not await a.list_claims():
                    break
                await asyncio.sleep(0.01)
            assert await a.list_claims() == []
        finally:
            await a.close()
            await b.close()
            await ext.close()
            await server.close()

    event_loop.run_until_complete(scenario())


def test_malformed_lines_do_not_disconnect(event_loop, sock_dir):
    socket_path = os.path.join(sock_dir, "broker.sock")

    async def scenario():
        server = BrokerServer(socket_path, broker=Broker())
        await server.start()
        try:
            reader, writer = await asyncio.open_unix_connection(socket_path)
            writer.write(b"garbage\n")
            writer.write(b'{"type": "request", "id": 1, "op": "nope"}\n')
            writer.write(b'{"type": "request", "id": 2, "op": "status"}\n')
            await writer.drain()

            first = json.loads(await asyncio.wait_for(reader.readline(), 2))
            second = json.loads(await asyncio.wait_for(reader.readline(), 2))
            by_id = {first["id"]: first, second["id"]: second}
            assert by_id[1]["ok"] is False
            assert by_id[1]["code"] == "protocol_error"
            assert by_id[2]["ok"] is True
            writer.close()
        finally:
            await server.close()

    event_loop.run_until_complete(scenario())
