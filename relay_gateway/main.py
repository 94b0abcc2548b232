"""
Relay Gateway main application.

Real-time group messaging for study groups: chat, call signaling and
whiteboard strokes all travel as opaque sendMessage payloads.

Routes:
- /ws                 WebSocket session (bearer credential required)
- /ws/health          Liveness and connection counts
- /ws/health/detailed Dependency checks (503 when degraded)
- /internal/...       Eviction hook for the group-management service
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Path, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.config.logging import setup_logging, relay_logger as logger
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.events import close_redis_pool, get_redis_pool
from shared.security.api_keys import require_internal_key
from relay_gateway.connection_manager import ConnectionManager
from relay_gateway.redis_subscriber import run_eviction_subscriber
from relay_gateway.components.core.constants import DEFAULT_ALLOWED_ORIGINS, WSConstants
from relay_gateway.components.endpoints.group_chat import GroupChatEndpoint

REDIS_HEALTH_TIMEOUT = 2.0


async def start_eviction_subscriber(manager: ConnectionManager) -> None:
    """Run the membership subscriber; a crash is logged, never raised into the app."""
    try:
        await run_eviction_subscriber(manager)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Eviction subscriber error", error=str(e), exc_info=True)


async def check_redis_health() -> dict:
    try:
        redis_client = await get_redis_pool()
        await asyncio.wait_for(redis_client.ping(), timeout=REDIS_HEALTH_TIMEOUT)
        return {"status": "healthy"}
    except asyncio.TimeoutError:
        return {"status": "unhealthy", "error": "timeout"}
    except Exception as e:
        return {"status": "unhealthy", "error": type(e).__name__}


def _allowed_origins() -> list[str]:
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    return list(DEFAULT_ALLOWED_ORIGINS) + [
        origin.replace("http://", "https://") for origin in DEFAULT_ALLOWED_ORIGINS
    ]


def create_app(
    manager: ConnectionManager | None = None,
    start_background_tasks: bool = True,
) -> FastAPI:
    """
    Build the relay application around one ConnectionManager.

    Args:
        manager: Manager to serve; a default one is built from settings.
        start_background_tasks: Start the health monitor and eviction
            subscriber in the lifespan (tests drive them directly).
    """
    manager = manager or ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        errors = settings.validate_production_secrets()
        if errors:
            for error in errors:
                logger.critical("Configuration error", error=error)
            raise RuntimeError("Invalid production configuration: " + "; ".join(errors))

        logger.info(
            "Starting relay gateway",
            port=settings.relay_port,
            env=settings.environment,
            health_check_interval=manager.health_monitor.interval,
        )

        tasks: list[asyncio.Task] = []
        if start_background_tasks:
            tasks.append(
                asyncio.create_task(manager.run_health_monitor(), name="health_monitor")
            )
            if settings.eviction_subscriber_enabled:
                tasks.append(
                    asyncio.create_task(
                        start_eviction_subscriber(manager),
                        name="eviction_subscriber",
                    )
                )
        app.state.background_tasks = tasks

        yield

        logger.info("Shutting down relay gateway")
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        closed = await manager.shutdown()
        logger.info("Closed client connections", count=closed)

        await close_redis_pool()

    app = FastAPI(
        title="Study Group Relay",
        description="Real-time group messaging relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.background_tasks = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Internal-Key"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/ws/health")
    def health_check():
        """Basic health check endpoint."""
        try:
            stats = manager.get_stats()
        except Exception as e:
            logger.warning("Failed to get stats in health check", error=str(e))
            stats = {"error": "stats_unavailable"}
        return {
            "status": "healthy",
            "service": "relay-gateway",
            "version": app.version,
            "environment": settings.environment,
            **stats,
        }

    @app.get("/ws/health/detailed")
    async def detailed_health_check():
        """Health check with Redis and background task status."""
        checks = {
            "service": "relay-gateway",
            "environment": settings.environment,
            "connections": manager.get_stats(),
            "dependencies": {},
            "tasks": {
                task.get_name(): "running" if not task.done() else "stopped"
                for task in app.state.background_tasks
            },
        }
        all_healthy = manager.accepting

        if settings.eviction_subscriber_enabled:
            redis_health = await check_redis_health()
            checks["dependencies"]["redis"] = redis_health
            if redis_health["status"] != "healthy":
                all_healthy = False

        if any(state == "stopped" for state in checks["tasks"].values()):
            all_healthy = False

        checks["status"] = "healthy" if all_healthy else "degraded"
        if not all_healthy:
            return JSONResponse(content=checks, status_code=503)
        return checks

    # =========================================================================
    # Internal routes
    # =========================================================================

    @app.post(
        "/internal/groups/{group_id}/members/{identity}/evict",
        dependencies=[Depends(require_internal_key)],
    )
    async def evict_member(
        group_id: str = Path(..., min_length=1, max_length=WSConstants.MAX_GROUP_ID_LENGTH),
        identity: str = Path(..., min_length=1, max_length=128),
    ):
        """Close every connection of identity bound to group_id on this instance."""
        evicted = await manager.evict(group_id, identity)
        return {"evicted": evicted}

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/ws")
    async def group_chat_websocket(websocket: WebSocket):
        """
        Group chat session.

        Credential: "Bearer <token>" as a sub-protocol, Authorization
        header, or ?token= query parameter.
        """
        endpoint = GroupChatEndpoint(websocket, manager)
        await endpoint.run()

    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "relay_gateway.main:app",
        host="0.0.0.0",
        port=settings.relay_port,
        reload=settings.debug,
    )
