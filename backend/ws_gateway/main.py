"""
Realtime Gateway main application.

WebSocket gateway for rooms, typed subscriptions and broadcasts, plus the
REST control surface that drives it.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import Settings, settings as default_settings
from shared.config.logging import setup_logging, ws_gateway_logger as logger
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.utils.exceptions import register_exception_handlers
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.components.core.constants import DEFAULT_ALLOWED_ORIGINS, now_ms
from ws_gateway.components.core.dependencies import get_connection_manager
from ws_gateway.components.endpoints.realtime import RealtimeEndpoint
from ws_gateway.routers.control import router as control_router

SERVICE_NAME = "realtime-gateway"
VERSION = "1.0.0"


# =============================================================================
# Background tasks
# =============================================================================


async def run_heartbeat_reaper(manager: ConnectionManager, interval: float) -> None:
    """
    Periodically force-disconnect connections that stopped sending frames.

    Runs every ``interval`` seconds; a connection is stale after
    ``ws_idle_timeout`` seconds without activity.
    """
    while True:
        try:
            await asyncio.sleep(interval)
            manager.reap_stale_connections()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat reaper", error=str(e), exc_info=True)


def collect_system_metrics(manager: ConnectionManager) -> dict:
    """Snapshot sent to the monitoring room."""
    return {
        "type": "metrics",
        "cpu": time.process_time(),
        "uptime": round(manager.uptime, 3),
        "connectedClients": manager.registry.count(),
        "rooms": len(manager.registry.rooms()),
        "timestamp": now_ms(),
    }


async def run_monitoring_broadcast(manager: ConnectionManager, room: str, interval: float) -> None:
    """Send a metrics room-message to the monitoring room every interval."""
    while True:
        try:
            await asyncio.sleep(interval)
            manager.dispatcher.send_to_room(room, collect_system_metrics(manager))
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in monitoring broadcast", error=str(e), exc_info=True)


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts:
    - Idle reaper for silent connections (when ws_idle_timeout is set)
    - Monitoring broadcast (when enabled)
    """
    manager: ConnectionManager = app.state.manager
    cfg = manager.settings
    setup_logging(cfg)

    config_errors = cfg.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        raise RuntimeError(
            f"Production configuration errors: {'; '.join(config_errors)}. "
            "Server will not start with insecure configuration."
        )

    logger.info(
        "Starting Realtime Gateway",
        port=cfg.ws_gateway_port,
        env=cfg.environment,
        ws_path=cfg.ws_path,
        api_prefix=cfg.api_prefix,
    )

    tasks: list[asyncio.Task] = []
    if cfg.ws_idle_timeout is not None:
        tasks.append(asyncio.create_task(
            run_heartbeat_reaper(manager, cfg.ws_ping_interval),
            name="heartbeat_reaper",
        ))
        logger.info("Idle reaper enabled", idle_timeout=cfg.ws_idle_timeout)
    if cfg.monitoring_enabled:
        tasks.append(asyncio.create_task(
            run_monitoring_broadcast(manager, cfg.monitoring_room, cfg.monitoring_interval),
            name="monitoring_broadcast",
        ))
        logger.info("Monitoring broadcast enabled", room=cfg.monitoring_room, interval=cfg.monitoring_interval)

    yield

    logger.info("Shutting down Realtime Gateway")
    for task in tasks:
        await _cancel(task)
    manager.shutdown()


# =============================================================================
# FastAPI Application
# =============================================================================


def get_cors_origins(cfg: Settings) -> list[str]:
    """Configured origins, or the development defaults plus HTTPS variants."""
    configured = cfg.get_allowed_origins()
    if configured:
        return configured
    return list(DEFAULT_ALLOWED_ORIGINS) + [
        origin.replace("http://", "https://") for origin in DEFAULT_ALLOWED_ORIGINS
    ]


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application with its own ConnectionManager.

    Args:
        settings: Settings to use; defaults to the environment-loaded settings.
    """
    cfg = settings or default_settings

    app = FastAPI(
        title="Realtime Gateway",
        description="WebSocket rooms, subscriptions and broadcasts with a REST control surface",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.manager = ConnectionManager(cfg)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(cfg),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(app)

    app.include_router(control_router, prefix=cfg.api_prefix)

    @app.get("/ws/health")
    async def health_check(manager: ConnectionManager = Depends(get_connection_manager)):
        """Basic health check endpoint."""
        try:
            stats = manager.get_stats()
        except Exception as e:
            logger.warning("Failed to get stats in health check", error=str(e))
            stats = {"error": "stats_unavailable"}
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": app.version,
            "environment": cfg.environment,
            **stats,
        }

    @app.websocket(cfg.ws_path)
    async def realtime_websocket(
        websocket: WebSocket,
        manager: ConnectionManager = Depends(get_connection_manager),
    ):
        """WebSocket endpoint for realtime clients."""
        endpoint = RealtimeEndpoint(websocket, manager, cfg.ws_path)
        await endpoint.run()

    return app


app = create_app()


# =============================================================================
# Server entry point
# =============================================================================


def uvicorn_options(cfg: Settings) -> dict:
    """
    Server options derived from settings.

    uvicorn sends protocol-level pings every ``ws_ping_interval`` and closes
    sockets whose pong does not arrive within ``ws_ping_timeout``. Clients
    answer them without application code, so listen-only clients stay
    connected.
    """
    return {
        "host": cfg.host,
        "port": cfg.ws_gateway_port,
        "ws_ping_interval": cfg.ws_ping_interval,
        "ws_ping_timeout": cfg.ws_ping_timeout,
        "ws_max_size": cfg.ws_max_message_size,
    }


def run() -> None:
    """Run the gateway with uvicorn (``realtime-gateway`` console script)."""
    import uvicorn

    uvicorn.run(
        "ws_gateway.main:app",
        reload=default_settings.debug,
        **uvicorn_options(default_settings),
    )


if __name__ == "__main__":
    run()
