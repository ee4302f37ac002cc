"""WebSocket endpoint for pushed feed updates."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dronewatch.models import FeedRole
from dronewatch.pipeline import Pipeline
from dronewatch.web.serializers import message_dict, snapshot_dict

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections for the event channel."""

    def __init__(self):
        self.event_clients: list[WebSocket] = []

    async def connect_events(self, ws: WebSocket) -> None:
        await ws.accept()
        self.event_clients.append(ws)
        logger.info("Event client connected (%d total)", len(self.event_clients))

    def disconnect_events(self, ws: WebSocket) -> None:
        if ws in self.event_clients:
            self.event_clients.remove(ws)
        logger.info("Event client disconnected (%d remaining)",
                    len(self.event_clients))

    async def broadcast_event(self, data: dict) -> None:
        """Broadcast a JSON event to all event clients."""
        message = json.dumps(data)
        disconnected = []
        for ws in self.event_clients:
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.append(ws)
        for ws in disconnected:
            self.disconnect_events(ws)


def create_ws_router(pipeline: Pipeline) -> APIRouter:
    router = APIRouter()
    manager = ConnectionManager()

    # Register event callback on pipeline
    def on_event(message: dict):
        """Bridge from pipeline callbacks to the asyncio event loop."""
        if not manager.event_clients:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(manager.broadcast_event(message_dict(message)))

    pipeline.add_event_callback(on_event)

    @router.websocket("/ws/events")
    async def ws_events(ws: WebSocket):
        """JSON feed updates; each client first receives the current snapshots."""
        await manager.connect_events(ws)
        try:
            for role in FeedRole:
                await ws.send_text(json.dumps({
                    "type": "snapshot",
                    "role": role.value,
                    "snapshot": snapshot_dict(pipeline.snapshot(role)),
                }))
            while True:
                # Keep connection alive; events pushed via broadcast
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Events WebSocket error")
        finally:
            manager.disconnect_events(ws)

    return router
