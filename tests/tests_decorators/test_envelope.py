# tests/tests_decorators/test_envelope.py
import json
import asyncio
import pytest

from browser_broker.decorators import tool_envelope
from browser_broker.errors import OwnershipConflict

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


def test_tool_envelope_normalizes_sync_success_and_values():
    @tool_envelope
    def f_none():
        return None

    @tool_envelope
    def f_dict():
        return {"a": 1}

    @tool_envelope
    def f_bytes():
        return b"hello"

    class O:
        def __repr__(self):
            return "<O>"

    @tool_envelope
    def f_obj():
        return O()

    assert f_none() == ""
    assert json.loads(f_dict()) == {"a": 1}
    assert f_bytes() == "hello"
    assert isinstance(f_obj(), str)


def test_tool_envelope_error_payload_includes_traceback_by_default(monkeypatch):
    monkeypatch.delenv("BROWSER_BROKER_TOOL_ERRORS_TRACEBACK", raising=False)

    @tool_envelope
    def f_fail():
        raise ValueError("boom")

    payload = json.loads(f_fail())
    assert payload["ok"] is False
    assert payload["summary"] == "ValueError: boom"
    assert payload["error"]["type"] == "ValueError"
    assert "traceback" in payload["error"]
    assert "code" not in payload["error"]
    assert "timestamp" in payload


def test_tool_envelope_error_payload_without_traceback_when_disabled(monkeypatch):
    monkeypatch.setenv("BROWSER_BROKER_TOOL_ERRORS_TRACEBACK", "0")

    @tool_envelope
    def f_fail():
        raise RuntimeError("err")

    payload = json.loads(f_fail())
    assert payload["ok"] is False
    assert payload["error"]["type"] == "RuntimeError"
    assert "traceback" not in payload["error"]


def test_tool_envelope_reports_broker_error_codes(event_loop):
    @tool_envelope
    async def f():
        raise OwnershipConflict(3, "session:other")

    async def test_logic():
        payload = json.loads(await f())
        assert payload["error"]["type"] == "OwnershipConflict"
        assert payload["error"]["code"] == "ownership_conflict"
        assert "session:other" in payload["error"]["message"]

    event_loop.run_until_complete(test_logic())


def test_tool_envelope_async_cancelled_error_propagates(event_loop):
    @tool_envelope
    async def f_cancel():
        raise asyncio.CancelledError()

    async def test_logic():
        with pytest.raises(asyncio.CancelledError):
            await f_cancel()

    event_loop.run_until_complete(test_logic())


def test_tool_envelope_normalizes_async_return(event_loop):
    @tool_envelope
    async def f():
        return {"msg": "ok"}

    async def test_logic():
        out = await f()
        assert isinstance(out, str)
        assert json.loads(out) == {"msg": "ok"}

    event_loop.run_until_complete(test_logic())


def test_tool_envelope_bytes_decoding_fallback():
    bad_bytes = b"\xff\xfe\xfa"  # invalid UTF-8

    @tool_envelope
    def f():
        return bad_bytes

    s = f()
    assert isinstance(s, str)
    assert len(s) > 0  # replaced chars
