"""Service dependency injection for the code runner."""

# Standard library imports
from functools import lru_cache
from typing import Annotated, Optional

# Third-party imports
from fastapi import Depends
import structlog

# Local application imports
from ..config import settings
from ..services.container import ContainerConfig, DockerEngine
from ..services.dispatcher import RequestDispatcher
from ..services.execution import ExecutionPipeline
from ..services.sandbox import SandboxStore
from ..integrations.discord_bot import CodeRunnerBot, DiscordChat

logger = structlog.get_logger(__name__)

# Global reference to the chat client (set by main.py lifespan)
_chat_client: Optional[CodeRunnerBot] = None


def set_chat_client(client: Optional[CodeRunnerBot]) -> None:
    """Set the global chat client reference.

    Called by main.py after the client is started in lifespan.
    """
    global _chat_client
    _chat_client = client
    if client is not None:
        logger.info("Chat client registered with dependency injection")


def get_chat_client() -> Optional[CodeRunnerBot]:
    """Get the chat client instance (None when no token is configured)."""
    return _chat_client


@lru_cache()
def get_container_engine() -> DockerEngine:
    """Get the docker container engine."""
    return DockerEngine()


@lru_cache()
def get_sandbox_store() -> SandboxStore:
    """Get the process-wide sandbox store."""
    return SandboxStore(
        engine=get_container_engine(),
        container_config=ContainerConfig.from_settings(),
        idle_timeout=settings.sandbox.sandbox_idle_timeout_seconds,
    )


@lru_cache()
def get_chat_platform() -> DiscordChat:
    """Get the outbound chat platform."""
    return DiscordChat()


@lru_cache()
def get_execution_pipeline() -> ExecutionPipeline:
    """Get the execution pipeline wired to the store, engine and chat."""
    return ExecutionPipeline.from_settings(
        store=get_sandbox_store(),
        engine=get_container_engine(),
        chat=get_chat_platform(),
    )


@lru_cache()
def get_request_dispatcher() -> RequestDispatcher:
    """Get the request dispatcher."""
    return RequestDispatcher(
        store=get_sandbox_store(),
        pipeline=get_execution_pipeline(),
        prefix=settings.command_prefix,
    )


# Type aliases for dependency injection
ContainerEngineDep = Annotated[DockerEngine, Depends(get_container_engine)]
SandboxStoreDep = Annotated[SandboxStore, Depends(get_sandbox_store)]
ChatClientDep = Annotated[Optional[CodeRunnerBot], Depends(get_chat_client)]
