"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from .. import __version__
from ..dependencies.services import ChatClientDep, ContainerEngineDep, SandboxStoreDep

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Basic health check")
async def basic_health_check():
    """Liveness check; does not touch docker or the chat client."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "code-runner",
    }


@router.get("/health/detailed", summary="Detailed health check")
async def detailed_health_check(
    engine: ContainerEngineDep,
    store: SandboxStoreDep,
    chat_client: ChatClientDep,
):
    """Docker reachability, chat connection and live sandbox count."""
    docker_ok = await engine.ping()
    chat_connected = chat_client.is_connected if chat_client is not None else None

    if not docker_ok:
        status = "unhealthy"
    elif chat_connected is False:
        status = "degraded"
    else:
        status = "healthy"

    response_data = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "docker": "healthy" if docker_ok else "unhealthy",
            "chat": (
                "disabled"
                if chat_connected is None
                else ("healthy" if chat_connected else "unhealthy")
            ),
        },
        "active_sandboxes": len(store),
    }

    if status == "unhealthy":
        logger.warning("Health check failed", **response_data["services"])
        return JSONResponse(status_code=503, content=response_data)
    if status == "degraded":
        return JSONResponse(
            status_code=200,
            content=response_data,
            headers={"X-Health-Status": "degraded"},
        )
    return JSONResponse(status_code=200, content=response_data)
