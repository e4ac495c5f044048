"""Main application for the code runner.

Serves the health API and runs the chat client as a background task in the
same event loop.
"""

# Standard library imports
import asyncio
from contextlib import asynccontextmanager

# Third-party imports
import structlog
import uvicorn
from fastapi import FastAPI

# Local application imports
from . import __version__
from .api import health
from .config import settings
from .dependencies.services import (
    get_container_engine,
    get_request_dispatcher,
    get_sandbox_store,
    set_chat_client,
)
from .integrations.discord_bot import CodeRunnerBot
from .utils.logging import setup_logging

# Setup logging
setup_logging()
logger = structlog.get_logger()


async def _startup_chat_client(app: FastAPI) -> None:
    """Start the Discord client if a token is configured."""
    if not settings.chat_enabled:
        logger.warning("DISCORD_TOKEN not set - chat client disabled")
        return

    client = CodeRunnerBot(get_request_dispatcher())
    task = asyncio.create_task(client.start(settings.discord_token))

    def _on_done(t: asyncio.Task) -> None:
        if not t.cancelled() and t.exception() is not None:
            logger.error("Chat client stopped", error=str(t.exception()))

    task.add_done_callback(_on_done)
    set_chat_client(client)
    app.state.chat_client = client
    app.state.chat_task = task
    logger.info("Chat client started", prefix=settings.command_prefix)


async def _check_engine() -> None:
    """Log whether docker is reachable; the bot still starts if it is not."""
    if await get_container_engine().ping():
        logger.info(
            "Docker daemon reachable",
            image=settings.docker_image,
            memory_mb=settings.resources.get_memory_mb(),
        )
    else:
        logger.error("Docker daemon unreachable - snippets will not run")


async def _shutdown_services(app: FastAPI) -> None:
    """Close the chat client and tear down every sandbox."""
    client = getattr(app.state, "chat_client", None)
    if client is not None:
        try:
            await client.close()
            logger.info("Chat client stopped")
        except Exception as e:
            logger.error("Error stopping chat client", error=str(e))
        set_chat_client(None)

    try:
        await get_sandbox_store().close()
        logger.info("Sandboxes destroyed")
    except Exception as e:
        logger.error("Error destroying sandboxes", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting code runner", version=__version__)

    await _check_engine()
    await _startup_chat_client(app)

    logger.info("Code runner startup completed")

    yield

    logger.info("Shutting down code runner")
    await _shutdown_services(app)
    logger.info("Code runner shutdown completed")


app = FastAPI(
    title="Code Runner",
    description="Runs chat-submitted C++ snippets in disposable containers",
    version=__version__,
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

if settings.api.enable_health_api:
    app.include_router(health.router, tags=["health"])


def run_server():
    api = settings.api
    logger.info(f"Starting HTTP server on {api.api_host}:{api.api_port}")
    uvicorn.run(
        "src.main:app",
        host=api.api_host,
        port=api.api_port,
        reload=api.api_reload,
        log_level=settings.logging.log_level.lower(),
        access_log=api.enable_access_logs,
    )


if __name__ == "__main__":
    run_server()
