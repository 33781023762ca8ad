"""Realtime event stream adapter for the Shelly Cloud.

Implements IStreamClient over aiohttp's websocket client. The client owns
the connection state machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> (CLOSED | ERRORED) -> CONNECTING ...

There is no terminal success state. Connect failures and connection errors
re-run the full connect sequence (endpoint lookup included) with no retry
limit and no backoff. A clean server-initiated close reconnects too unless
``reconnect_on_close`` is False. stop() ends the loop for graceful shutdown.

Frames are handled one at a time in arrival order; anything that is not
valid JSON or not a status change is dropped.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Optional

import aiohttp

from ..domain.entities import ConnectionState
from ..domain.ports import EventCallback, ICloudSession, IStreamClient
from ..domain.schemas import parse_status_change

logger = logging.getLogger(__name__)

StateCallback = Callable[[ConnectionState], None]


def _redact(endpoint: str) -> str:
    """Strip the query string (it carries the access token)."""
    return endpoint.split("?", 1)[0]


class ShellyStreamClient(IStreamClient):
    """Reconnecting websocket client delivering StatusChange events.

    Attributes:
        cloud: Cloud session used to resolve the endpoint on every attempt
        session: aiohttp session used for ws_connect
        reconnect_on_close: Reconnect after a clean server-initiated close
        reconnect_delay: Fixed pause between attempts (0 = immediate)
        connect_attempts: Number of connect sequences started so far
    """

    def __init__(
        self,
        cloud: ICloudSession,
        session: aiohttp.ClientSession,
        reconnect_on_close: bool = True,
        reconnect_delay: float = 0.0,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.cloud = cloud
        self.session = session
        self.reconnect_on_close = reconnect_on_close
        self.reconnect_delay = reconnect_delay
        self.connect_attempts = 0
        self._on_state_change = on_state_change
        self._state = ConnectionState.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    async def run(self, on_event: EventCallback) -> None:
        """Connect and deliver events until stop() is called.

        Returns early only when the server closes cleanly and
        reconnect_on_close is False.
        """
        self._stop_event.clear()
        try:
            while not self._stop_event.is_set():
                closed_cleanly = await self._connect_and_listen(on_event)

                if self._stop_event.is_set():
                    break
                if closed_cleanly and not self.reconnect_on_close:
                    logger.info("Stream closed by server; reconnect on close is disabled")
                    return

                await self._pause_before_retry()
        finally:
            self._ws = None
            if self._stop_event.is_set():
                self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        """Stop the reconnect loop and close the live socket, if any."""
        self._stop_event.set()
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()

    async def _pause_before_retry(self) -> None:
        if self.reconnect_delay <= 0:
            # Yield so a tight failure loop never starves the event loop
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.reconnect_delay)
        except asyncio.TimeoutError:
            pass

    # ----------------------------------------
    # One connection
    # ----------------------------------------

    async def _connect_and_listen(self, on_event: EventCallback) -> bool:
        """Run one connect sequence and read until the socket ends.

        Returns:
            True on a clean close, False on a connect or connection error
        """
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1

        try:
            endpoint = await self.cloud.get_ws_endpoint()
            logger.debug(f"Connecting to {_redact(endpoint)}")
            ws = await self.session.ws_connect(endpoint)
        except Exception as e:
            logger.error(f"Connect Error: {type(e).__name__}: {e}")
            self._set_state(ConnectionState.ERRORED)
            return False

        self._ws = ws
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connection established!")

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data, on_event)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Connection error: {ws.exception()}")
                    self._set_state(ConnectionState.ERRORED)
                    return False
                if self._stop_event.is_set():
                    break
        except Exception as e:
            logger.error(f"Connection error: {type(e).__name__}: {e}")
            self._set_state(ConnectionState.ERRORED)
            return False
        finally:
            self._ws = None
            if not ws.closed:
                await ws.close()

        logger.info("Connection closed!")
        self._set_state(ConnectionState.CLOSED)
        return True

    async def _handle_text(self, data: str, on_event: EventCallback) -> None:
        try:
            payload = json.loads(data)
        except ValueError:
            logger.debug("Dropping non-JSON frame")
            return

        event = parse_status_change(payload)
        if event is None:
            return

        logger.debug(f"Status change for {event.code} ({event.unique_id})")
        try:
            await on_event(event)
        except Exception as e:
            logger.error(
                f"Event handler failed for {event.unique_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
