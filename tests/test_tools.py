"""MCP tool implementations against a fake broker client."""

import asyncio
import base64
import json
import os
from unittest.mock import AsyncMock

import pytest

from browser_broker import context
from browser_broker.tools import broker_info, claims, extraction, interaction, tabs

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!

PNG = b"\x89PNG\r\n\x1a\nfake"


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


class FakeClient:
    connected = True

    def __init__(self):
        self.call_tool = AsyncMock()
        self.status = AsyncMock(return_value={"broker": True, "hostConnected": True, "claims": []})
        self.list_claims = AsyncMock(return_value=[])
        self.claim_tab = AsyncMock(return_value={"ok": True, "tabId": 1, "sessionId": "session:me"})
        self.release_tab = AsyncMock(return_value={"ok": True, "tabId": 1, "released": True})


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("BROWSER_BROKER_HOME", str(tmp_path))
    monkeypatch.setenv("BROWSER_BROKER_SESSION_ID", "session:me")
    context.reset_context()
    fake = FakeClient()
    context.get_context().client = fake
    yield fake
    context.reset_context()


def run(loop, coro):
    return json.loads(loop.run_until_complete(coro))


def test_navigate(event_loop, client):
    client.call_tool.return_value = {"tabId": 4, "content": "Navigated to https://example.com"}

    out = run(event_loop, interaction.navigate("https://example.com"))

    client.call_tool.assert_awaited_once_with("navigate", {"url": "https://example.com", "tabId": None})
    assert out == {
        "ok": True,
        "action": "navigate",
        "tabId": 4,
        "url": "https://example.com",
        "content": "Navigated to https://example.com",
    }


def test_click_and_type_pass_selector_and_tab(event_loop, client):
    client.call_tool.return_value = {"tabId": 2, "content": "Clicked"}
    run(event_loop, interaction.click("#go", tab_id=2))
    client.call_tool.assert_awaited_with("click", {"selector": "#go", "index": 0, "tabId": 2})

    client.call_tool.return_value = {"tabId": 2, "content": "Typed"}
    out = run(event_loop, interaction.type_text("input[name=q]", "hello", clear=True, tab_id=2))
    args = client.call_tool.await_args[0][1]
    assert args["text"] == "hello"
    assert args["clear"] is True
    assert out["selector"] == "input[name=q]"


def test_execute_decodes_json_content(event_loop, client):
    client.call_tool.return_value = {"tabId": 1, "content": '{"title": "Example"}'}
    out = run(event_loop, interaction.execute("document.title"))
    assert out["content"] == {"title": "Example"}


def test_get_tabs(event_loop, client):
    listing = [{"id": 1, "url": "https://a", "title": "A", "active": True, "windowId": 1}]
    client.call_tool.return_value = {"content": json.dumps(listing)}

    out = run(event_loop, tabs.get_tabs())

    client.call_tool.assert_awaited_once_with("get_tabs")
    assert out["tabId"] is None
    assert out["content"] == listing


def test_screenshot_saved_to_disk(event_loop, client, tmp_path):
    data_url = "data:image/png;base64," + base64.b64encode(PNG).decode()
    client.call_tool.return_value = {"tabId": 3, "content": data_url}

    out = run(event_loop, extraction.take_screenshot(save=True, path="shot", return_base64=False))

    assert out["ok"] is True
    assert out["tabId"] == 3
    assert "base64" not in out
    assert out["saved_to"] == str(tmp_path / "screenshots" / "shot.png")
    with open(out["saved_to"], "rb") as f:
        assert f.read() == PNG


def test_screenshot_returns_base64(event_loop, client):
    data_url = "data:image/png;base64," + base64.b64encode(PNG).decode()
    client.call_tool.return_value = {"tabId": 3, "content": data_url}

    out = run(event_loop, extraction.take_screenshot())
    assert out["saved_to"] is None
    assert base64.b64decode(out["base64"]) == PNG


def test_screenshot_failure(event_loop, client):
    client.call_tool.return_value = {"tabId": 3, "content": "Cannot capture chrome:// pages"}
    out = run(event_loop, extraction.take_screenshot(save=True))
    assert out["ok"] is False
    assert out["error"] == "screenshot_failed"


def test_query_and_wait_for(event_loop, client):
    client.call_tool.return_value = {"tabId": 1, "content": '{"ok": true, "value": "42"}'}
    out = run(event_loop, extraction.query(".price", mode="text"))
    assert out["content"] == {"ok": True, "value": "42"}
    assert client.call_tool.await_args[0][1]["selector"] == ".price"

    run(event_loop, extraction.wait_for("#ready", timeout_ms=120000))
    tool, args = client.call_tool.await_args[0]
    assert tool == "wait_for"
    assert args["timeoutMs"] == 120000
    assert client.call_tool.await_args[1]["timeout"] >= 125.0


def test_status(event_loop, client):
    out = run(event_loop, broker_info.status())
    assert out["hostConnected"] is True
    assert out["sessionId"] == "session:me"
    assert "connected and ready" in out["message"]


def test_debug_info(event_loop, client):
    out = run(event_loop, broker_info.debug_info())
    assert out["ok"] is True
    assert out["diagnostics"]["context_state"]["session_id"] == "session:me"
    assert "Socket path" in out["diagnostics"]["summary"]


def test_claims(event_loop, client):
    client.list_claims.return_value = [
        {"tabId": 1, "sessionId": "session:me", "claimedAt": "t"},
        {"tabId": 2, "sessionId": "session:other", "claimedAt": "t"},
    ]
    out = run(event_loop, claims.list_claims())
    assert out["ownedTabs"] == [1]

    out = run(event_loop, claims.claim_tab(1, force=True))
    client.claim_tab.assert_awaited_once_with(1, force=True)
    assert out["sessionId"] == "session:me"

    out = run(event_loop, claims.release_tab(1))
    assert out["released"] is True


def test_server_registers_all_tools(event_loop):
    from browser_broker.__main__ import mcp

    names = {tool.name for tool in event_loop.run_until_complete(mcp.list_tools())}
    assert names == {
        "browser_status",
        "browser_get_tabs",
        "browser_get_active_tab",
        "browser_navigate",
        "browser_click",
        "browser_type",
        "browser_scroll",
        "browser_wait",
        "browser_execute",
        "browser_snapshot",
        "browser_screenshot",
        "browser_extract",
        "browser_query",
        "browser_wait_for",
        "browser_list_claims",
        "browser_claim_tab",
        "browser_release_tab",
        "browser_debug_info",
    }


def test_server_tool_reports_broker_unavailable(monkeypatch, event_loop):
    from browser_broker import __main__ as server
    from browser_broker.errors import BrokerUnavailable

    async def connect_client(ctx=None):
        raise BrokerUnavailable("nope")

    monkeypatch.setattr(context, "connect_client", connect_client)
    payload = json.loads(event_loop.run_until_complete(server.browser_navigate("https://example.com")))
    assert payload["ok"] is False
    assert payload["error"] == "broker_unavailable"
