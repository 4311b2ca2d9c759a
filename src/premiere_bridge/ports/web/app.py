from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from ... import __version__
from ...daemon.server import Coordinator

logger = logging.getLogger("premiere_bridge.web")


def create_app(coordinator: Coordinator) -> FastAPI:
    app = FastAPI(title="premiere-bridge", version=__version__)

    @app.get("/api/v1/status")
    async def status() -> Dict[str, Any]:
        return {"ok": True, "result": await coordinator.status()}

    @app.websocket("/")
    async def peer(websocket: WebSocket) -> None:
        await websocket.accept()
        channel = coordinator.channel
        channel.attach(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                channel.receive(websocket, raw)
        except WebSocketDisconnect:
            pass
        finally:
            channel.detach(websocket)

    return app
