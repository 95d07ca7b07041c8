"""WebSocket endpoint for live zone state.

Pushes zone_update messages from the zone store to every connected
browser WebSocket client.
"""

import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from ..services.gateway import GatewayService

logger = logging.getLogger(__name__)

# Set by main.py during startup
_service: GatewayService | None = None


def set_service(service: GatewayService | None) -> None:
    global _service
    _service = service


class LiveConnections:
    """Manages browser WebSocket connections."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("WebSocket client connected. Total: %d", len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info("WebSocket client disconnected. Total: %d", len(self.active_connections))

    async def broadcast(self, message: dict[str, Any]) -> None:
        disconnected: list[WebSocket] = []
        for conn in list(self.active_connections):
            try:
                await conn.send_json(message)
            except Exception:
                disconnected.append(conn)
        for conn in disconnected:
            if conn in self.active_connections:
                self.active_connections.remove(conn)


# Global connection manager
ws_manager = LiveConnections()


async def websocket_endpoint(websocket: WebSocket) -> None:
    """Handle WebSocket connections for live zone updates."""
    await ws_manager.connect(websocket)
    try:
        status = _service.status() if _service is not None else {"state": "disconnected"}
        await websocket.send_json({
            "type": "connection_status",
            "connected": status.get("state") == "connected",
        })
        if _service is not None:
            await websocket.send_json({"type": "zones", "data": _service.store.snapshot()})

        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
                if msg.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
            except json.JSONDecodeError:
                pass
    except (WebSocketDisconnect, ConnectionResetError, OSError):
        ws_manager.disconnect(websocket)
    except Exception:
        logger.debug("WebSocket closed unexpectedly", exc_info=True)
        ws_manager.disconnect(websocket)
