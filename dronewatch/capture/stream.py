"""Socket.IO live detection stream with automatic reconnection."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

import socketio
from socketio.exceptions import ConnectionError as StreamConnectionError

from dronewatch.models import DetectionEvent

logger = logging.getLogger(__name__)


class LiveStream:
    """Receives pushed detection events for one camera.

    Reconnects with exponential backoff after a failed attempt or a dropped
    connection. ``on_connect`` fires after every successful (re)connect so the
    owner can re-fetch history it may have missed.
    """

    def __init__(self, url: str, cam_id: str,
                 on_event: Callable[[DetectionEvent], Any],
                 on_connect: Callable[[], Any] | None = None,
                 event_template: str = "{cam_id}",
                 reconnect_delay: float = 2.0,
                 max_reconnect_delay: float = 60.0,
                 client_factory: Callable[..., Any] = socketio.AsyncClient):
        self._url = url
        self._cam_id = cam_id
        self._event_name = event_template.format(cam_id=cam_id)
        self._on_event = on_event
        self._on_connect = on_connect
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._client_factory = client_factory

        self._client: Any = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Start the connection loop on the running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.ensure_future(self._run_loop())
        logger.info("Live stream started for camera %s", self._cam_id)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._disconnect()
        logger.info("Live stream stopped for camera %s", self._cam_id)

    async def _disconnect(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is not None and getattr(client, "connected", False):
            await client.disconnect()

    async def _handle_message(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object stream payload on %s", self._event_name)
            return
        try:
            event = DetectionEvent.from_dict(data)
        except (ValueError, TypeError, AttributeError):
            logger.warning("Ignoring malformed stream event on %s", self._event_name)
            return
        await _call(self._on_event, event)

    async def _run_loop(self) -> None:
        delay = self._reconnect_delay

        while self._running:
            client = self._client_factory(reconnection=False)
            client.on(self._event_name, self._handle_message)
            self._client = client

            try:
                await client.connect(self._url, transports=["websocket", "polling"])
            except (StreamConnectionError, OSError) as exc:
                logger.warning("Stream connect failed (%s), retrying in %.1fs", exc, delay)
                self._client = None
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_reconnect_delay)
                continue

            self._connected = True
            delay = self._reconnect_delay
            logger.info("Connected to live stream %s (%s)", self._url, self._event_name)

            if self._on_connect is not None:
                try:
                    await _call(self._on_connect)
                except Exception:
                    logger.exception("Error in stream connect callback")

            await client.wait()
            self._connected = False
            self._client = None

            if self._running:
                logger.warning("Live stream disconnected, reconnecting in %.1fs", delay)
                await asyncio.sleep(delay)


async def _call(callback: Callable, *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result
