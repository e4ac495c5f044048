"""Dependencies package for the code runner."""

from .services import (
    get_chat_client,
    get_chat_platform,
    get_container_engine,
    get_execution_pipeline,
    get_request_dispatcher,
    get_sandbox_store,
    set_chat_client,
    ContainerEngineDep,
    SandboxStoreDep,
    ChatClientDep,
)

__all__ = [
    "get_chat_client",
    "get_chat_platform",
    "get_container_engine",
    "get_execution_pipeline",
    "get_request_dispatcher",
    "get_sandbox_store",
    "set_chat_client",
    "ContainerEngineDep",
    "SandboxStoreDep",
    "ChatClientDep",
]
