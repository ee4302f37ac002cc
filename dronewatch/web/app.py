"""FastAPI application factory."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dronewatch.pipeline import Pipeline
from dronewatch.web.routes import create_router
from dronewatch.web.websocket import create_ws_router


def create_app(pipeline: Pipeline, manage_pipeline: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    With ``manage_pipeline`` the pipeline's history fetch and live streams are
    started and stopped with the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_pipeline:
            pipeline.set_event_loop(asyncio.get_running_loop())
            await pipeline.start()
        try:
            yield
        finally:
            if manage_pipeline:
                await pipeline.stop()

    app = FastAPI(title="dronewatch", version="0.1.0", lifespan=lifespan)

    # Routes
    app.include_router(create_router(pipeline))
    app.include_router(create_ws_router(pipeline))

    return app
