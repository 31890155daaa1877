"""Tests for the pending-call table."""

import asyncio

import pytest

from browser_broker.broker.pending import PendingCallTable
from browser_broker.errors import BridgeDisconnected, CallTimeout

## We DO NOT want to use pytest-asyncio.
## Instead, use event_loop.run_until_complete()!


@pytest.fixture(scope="function")
def event_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


class Recorder:
    def __init__(self):
        self.results = []
        self.errors = []

    def resolve(self, value):
        self.results.append(value)

    def reject(self, err):
        self.errors.append(err)

    @property
    def settled(self):
        return len(self.results) + len(self.errors)


def test_ids_are_unique():
    table = PendingCallTable()
    ids = {table.next_id() for _ in range(100)}
    assert len(ids) == 100


def test_resolve_settles_once(event_loop):
    async def scenario():
        table = PendingCallTable(default_timeout=5)
        rec = Recorder()
        table.register(1, rec.resolve, rec.reject, session_id="A")
        assert 1 in table

        assert table.resolve(1, {"ok": 1}) is True
        assert table.resolve(1, {"ok": 2}) is False
        assert table.reject(1, RuntimeError("late")) is False
        assert rec.results == [{"ok": 1}]
        assert rec.errors == []
        assert len(table) == 0

    event_loop.run_until_complete(scenario())


def test_timeout_rejects_and_late_response_is_noop(event_loop):
    async def scenario():
        table = PendingCallTable(default_timeout=5)
        rec = Recorder()
        table.register(1, rec.resolve, rec.reject, timeout=0.01)
        await asyncio.sleep(0.05)

        assert len(rec.errors) == 1
        assert isinstance(rec.errors[0], CallTimeout)
        assert "Timed out waiting for bridge" in str(rec.errors[0])
        assert table.resolve(1, "late") is False
        assert rec.settled == 1

    event_loop.run_until_complete(scenario())


def test_resolution_cancels_timer(event_loop):
    async def scenario():
        table = PendingCallTable()
        rec = Recorder()
        table.register(1, rec.resolve, rec.reject, timeout=0.01)
        table.resolve(1, "done")
        await asyncio.sleep(0.05)
        assert rec.results == ["done"]
        assert rec.errors == []

    event_loop.run_until_complete(scenario())


def test_fail_all(event_loop):
    async def scenario():
        table = PendingCallTable()
        recs = [Recorder() for _ in range(3)]
        for i, rec in enumerate(recs, start=1):
            table.register(i, rec.resolve, rec.reject)

        err = BridgeDisconnected("Bridge disconnected")
        assert table.fail_all(err) == 3
        assert len(table) == 0
        for rec in recs:
            assert rec.errors == [err]

        # Nothing left to settle afterwards
        assert table.resolve(2, "late") is False
        await asyncio.sleep(0)
        assert all(rec.settled == 1 for rec in recs)

    event_loop.run_until_complete(scenario())


def test_duplicate_registration_rejected(event_loop):
    async def scenario():
        table = PendingCallTable()
        rec = Recorder()
        table.register(1, rec.resolve, rec.reject)
        with pytest.raises(ValueError):
            table.register(1, rec.resolve, rec.reject)
        table.fail_all(RuntimeError("cleanup"))

    event_loop.run_until_complete(scenario())
