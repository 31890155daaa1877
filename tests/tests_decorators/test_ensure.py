# tests/tests_decorators/test_ensure.py
import json
import asyncio
import pytest

from browser_broker import context
from browser_broker.decorators import ensure_broker_ready
from browser_broker.errors import BrokerUnavailable

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture(autouse=True)
def fresh_context():
    context.reset_context()
    yield
    context.reset_context()


def install_fake_connect(monkeypatch, *, error=None):
    """Replace context.connect_client; returns the list of recorded calls."""
    calls = []

    async def connect_client(ctx=None):
        calls.append(ctx)
        if error is not None:
            raise error
        return object()

    monkeypatch.setattr(context, "connect_client", connect_client)
    return calls


def test_ensure_broker_ready_runs_tool_when_connected(monkeypatch, event_loop):
    calls = install_fake_connect(monkeypatch)
    ran = {"x": False}

    @ensure_broker_ready
    async def f(value):
        ran["x"] = True
        return value * 2

    assert event_loop.run_until_complete(f(21)) == 42
    assert ran["x"] is True
    assert len(calls) == 1


def test_ensure_broker_ready_returns_error_when_unavailable(monkeypatch, event_loop):
    calls = install_fake_connect(monkeypatch, error=BrokerUnavailable("socket missing"))

    @ensure_broker_ready(include_diagnostics=True)
    async def f():
        return "SHOULD_NOT_RUN"

    payload = json.loads(event_loop.run_until_complete(f()))
    assert payload["ok"] is False
    assert payload["error"] == "broker_unavailable"
    assert "socket missing" in payload["message"]
    assert "Session id" in payload["diagnostics"]
    assert len(calls) == 1


def test_ensure_broker_ready_without_diagnostics(monkeypatch, event_loop):
    install_fake_connect(monkeypatch, error=BrokerUnavailable("down"))

    @ensure_broker_ready()
    async def f():
        return "SHOULD_NOT_RUN"

    payload = json.loads(event_loop.run_until_complete(f()))
    assert payload["error"] == "broker_unavailable"
    assert "diagnostics" not in payload


def test_ensure_broker_ready_rejects_sync_functions():
    with pytest.raises(TypeError):
        @ensure_broker_ready
        def f():
            return 1
