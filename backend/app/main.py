"""FastAPI application factory and lifespan for the Russound bridge."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .models.database import init_database, session_scope
from .protocol.registry import ClientRegistry
from .services.gateway import GatewayService
from .services.zone_state import ZoneStateStore
from .api.router import api_router
from .api import config as config_api
from .api import gateway as gateway_api
from .api import zones as zones_api
from .ws import handler as ws_handler

# Configure logging for our app (uvicorn only configures its own loggers)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _wire_service(service: GatewayService | None) -> None:
    zones_api.set_service(service)
    gateway_api.set_service(service)
    config_api.set_service(service)
    ws_handler.set_service(service)


async def _bg_start(service: GatewayService, host: str, port: int) -> None:
    """Connect in the background so uvicorn starts immediately."""
    try:
        await service.async_start(host, port)
    except Exception as e:
        logger.error("Background gateway start failed: %s", e, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: own the client registry and gateway connection."""
    logger.info("Database: %s", settings.db_path)
    init_database()

    registry = ClientRegistry()
    store = ZoneStateStore()
    store.set_broadcast_callback(ws_handler.ws_manager.broadcast)
    service = GatewayService(registry, store, settings)
    app.state.registry = registry
    app.state.gateway = service
    _wire_service(service)

    with session_scope() as db:
        host, port = config_api.get_gateway_address(db)

    if host and port:
        logger.info("Gateway configured at %s:%d", host, port)
    else:
        logger.info("Gateway not configured; set gateway_host/gateway_port via /api/config")
    start_task = asyncio.create_task(_bg_start(service, host, port))

    yield

    logger.info("Shutting down...")
    if not start_task.done():
        start_task.cancel()
        try:
            await start_task
        except asyncio.CancelledError:
            pass
    await service.async_stop()
    store.set_broadcast_callback(None)
    _wire_service(None)
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Russound Bridge",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.websocket("/ws/live")(ws_handler.websocket_endpoint)
    return app


# Application instance
app = create_app()


def main() -> None:
    """Run the bridge with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
