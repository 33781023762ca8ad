"""Tests for ShellyStreamClient.

The websocket is replaced by in-memory fakes so the reconnect state
machine can be driven deterministically.
"""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Optional

import aiohttp
import pytest

from src.shelly_blu.api.exceptions import ConnectionError
from src.shelly_blu.sync.adapters.stream import ShellyStreamClient
from src.shelly_blu.sync.domain.entities import ConnectionState, StatusChange
from src.shelly_blu.sync.domain.ports import ICloudSession


def text(data: Any) -> SimpleNamespace:
    if not isinstance(data, str):
        data = json.dumps(data)
    return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data)


def status_frame(device_id: str = "abc", code: str = "SBHT-003C", **status) -> SimpleNamespace:
    return text({
        "event": "Shelly:StatusOnChange",
        "device": {"id": device_id, "code": code},
        "status": status or {"temperature:0": {"tC": 20.0}},
    })


class FakeWebSocket:
    """In-memory stand-in for aiohttp.ClientWebSocketResponse."""

    def __init__(self, messages=None, block: bool = False, error: Optional[Exception] = None):
        self.messages = list(messages or [])
        self.block = block
        self.error = error
        self.closed = False
        self._closed_event = asyncio.Event()

    async def close(self):
        self.closed = True
        self._closed_event.set()

    def exception(self):
        return self.error

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.messages:
            return self.messages.pop(0)
        if self.block and not self.closed:
            await self._closed_event.wait()
        raise StopAsyncIteration


class FakeSession:
    """Returns (or raises) the next scripted result on each ws_connect."""

    def __init__(self, results):
        self.results = list(results)
        self.endpoints: list[str] = []

    async def ws_connect(self, endpoint):
        self.endpoints.append(endpoint)
        result = self.results.pop(0)
        if callable(result) and not isinstance(result, FakeWebSocket):
            result = await result()
        if isinstance(result, Exception):
            raise result
        return result


class MockCloudSession(ICloudSession):
    """Mock implementation of ICloudSession counting endpoint lookups."""

    def __init__(self):
        self.endpoint_calls = 0

    async def call(self, path: str) -> dict[str, Any]:
        return {}

    async def get_ws_endpoint(self) -> str:
        self.endpoint_calls += 1
        return f"wss://example.invalid:6113/shelly/wss/hk_sock?t=token{self.endpoint_calls}"


class EventRecorder:
    """Collects delivered events."""

    def __init__(self, fail_on: Optional[set] = None):
        self.events: list[StatusChange] = []
        self.fail_on = fail_on or set()

    async def __call__(self, event: StatusChange):
        self.events.append(event)
        if event.unique_id in self.fail_on:
            raise RuntimeError("handler exploded")


def make_client(session, reconnect_on_close=False, **kwargs):
    states: list[ConnectionState] = []
    cloud = MockCloudSession()
    client = ShellyStreamClient(
        cloud,
        session,
        reconnect_on_close=reconnect_on_close,
        on_state_change=states.append,
        **kwargs,
    )
    return client, cloud, states


class TestConnectionStateMachine:
    """Tests for connect, reconnect and close behaviour."""

    async def test_initial_state(self):
        """Test a new client is disconnected."""
        client, _, _ = make_client(FakeSession([]))
        assert client.state == ConnectionState.DISCONNECTED

    async def test_connect_failure_then_success(self):
        """Test a failed connect is retried with a fresh endpoint lookup."""
        session = FakeSession([
            ConnectionError("refused", host="example.invalid"),
            FakeWebSocket(),
        ])
        client, cloud, states = make_client(session)

        await client.run(EventRecorder())

        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.ERRORED,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.CLOSED,
        ]
        assert [s for s in states if s != ConnectionState.ERRORED][:3] == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]
        assert client.connect_attempts == 2
        assert cloud.endpoint_calls == 2
        assert session.endpoints[0] != session.endpoints[1]

    async def test_clean_close_without_reconnect_stays_closed(self):
        """Test a clean close ends run() when reconnect_on_close is False."""
        client, _, _ = make_client(FakeSession([FakeWebSocket()]))

        await client.run(EventRecorder())

        assert client.state == ConnectionState.CLOSED
        assert client.connect_attempts == 1

    async def test_clean_close_reconnects_by_default(self):
        """Test a clean close triggers a reconnect when reconnect_on_close is True."""
        holder = {}

        async def stop_then_fail():
            await holder["client"].stop()
            return ConnectionError("stopping", host="example.invalid")

        session = FakeSession([FakeWebSocket(), FakeWebSocket(), stop_then_fail])
        client, _, states = make_client(session, reconnect_on_close=True)
        holder["client"] = client

        await client.run(EventRecorder())

        assert client.connect_attempts == 3
        assert states.count(ConnectionState.CLOSED) == 2
        assert client.state == ConnectionState.DISCONNECTED

    async def test_error_message_reconnects(self):
        """Test an ERROR frame marks the connection errored and reconnects."""
        error_ws = FakeWebSocket(
            [SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None)],
            error=RuntimeError("reset"),
        )
        session = FakeSession([error_ws, FakeWebSocket()])
        client, _, states = make_client(session)

        await client.run(EventRecorder())

        assert ConnectionState.ERRORED in states
        assert client.connect_attempts == 2
        assert error_ws.closed

    async def test_stop_while_connected(self):
        """Test stop() closes the live socket and ends run()."""
        ws = FakeWebSocket(block=True)
        client, _, _ = make_client(FakeSession([ws]), reconnect_on_close=True)

        task = asyncio.create_task(client.run(EventRecorder()))
        for _ in range(50):
            if client.state == ConnectionState.CONNECTED:
                break
            await asyncio.sleep(0)
        assert client.state == ConnectionState.CONNECTED

        await client.stop()
        await asyncio.wait_for(task, timeout=1)

        assert ws.closed
        assert client.is_stopping
        assert client.state == ConnectionState.DISCONNECTED

    async def test_stop_during_reconnect_delay(self):
        """Test stop() interrupts the pause between attempts."""
        session = FakeSession([
            ConnectionError("refused", host="example.invalid"),
            FakeWebSocket(),
        ])
        client, _, _ = make_client(session, reconnect_delay=30)

        task = asyncio.create_task(client.run(EventRecorder()))
        for _ in range(50):
            if client.state == ConnectionState.ERRORED:
                break
            await asyncio.sleep(0)

        await client.stop()
        await asyncio.wait_for(task, timeout=1)

        assert client.connect_attempts == 1
        assert client.state == ConnectionState.DISCONNECTED


class TestFrameHandling:
    """Tests for frame parsing and delivery."""

    async def test_status_frames_delivered_in_order(self):
        """Test status changes reach the callback in arrival order."""
        ws = FakeWebSocket([
            status_frame("a"),
            status_frame("b", code="SBDW-002C", **{"window:0": {"open": True}}),
            status_frame("c"),
        ])
        client, _, _ = make_client(FakeSession([ws]))
        recorder = EventRecorder()

        await client.run(recorder)

        assert [e.unique_id for e in recorder.events] == ["a", "b", "c"]
        assert recorder.events[1].status == {"window:0": {"open": True}}

    async def test_non_json_frames_dropped(self):
        """Test invalid JSON does not break the connection."""
        ws = FakeWebSocket([text("not json {"), status_frame("a")])
        client, _, states = make_client(FakeSession([ws]))
        recorder = EventRecorder()

        await client.run(recorder)

        assert [e.unique_id for e in recorder.events] == ["a"]
        assert ConnectionState.ERRORED not in states

    async def test_non_status_frames_dropped(self):
        """Test JSON frames that are not status changes are ignored."""
        ws = FakeWebSocket([
            text({"event": "Shelly:Online", "device": {"id": "a"}}),
            text([1, 2, 3]),
            text("null"),
            status_frame("b"),
        ])
        client, _, _ = make_client(FakeSession([ws]))
        recorder = EventRecorder()

        await client.run(recorder)

        assert [e.unique_id for e in recorder.events] == ["b"]

    async def test_binary_frames_ignored(self):
        """Test non-text frames are skipped."""
        ws = FakeWebSocket([
            SimpleNamespace(type=aiohttp.WSMsgType.BINARY, data=b"\x00"),
            status_frame("a"),
        ])
        client, _, _ = make_client(FakeSession([ws]))
        recorder = EventRecorder()

        await client.run(recorder)

        assert [e.unique_id for e in recorder.events] == ["a"]

    async def test_callback_failure_does_not_end_connection(self):
        """Test an exception in the callback is contained."""
        ws = FakeWebSocket([status_frame("bad"), status_frame("good")])
        client, _, states = make_client(FakeSession([ws]))
        recorder = EventRecorder(fail_on={"bad"})

        await client.run(recorder)

        assert [e.unique_id for e in recorder.events] == ["bad", "good"]
        assert client.connect_attempts == 1
        assert ConnectionState.ERRORED not in states


@pytest.mark.parametrize("delay", [0, 0.0, -1])
async def test_zero_delay_retries_immediately(delay):
    """Non-positive delays retry without waiting."""
    session = FakeSession([
        ConnectionError("refused", host="example.invalid"),
        ConnectionError("refused", host="example.invalid"),
        FakeWebSocket(),
    ])
    client, _, _ = make_client(session, reconnect_delay=delay)

    await asyncio.wait_for(client.run(EventRecorder()), timeout=1)

    assert client.connect_attempts == 3
