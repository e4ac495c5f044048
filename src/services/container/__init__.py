"""Container engine services.

This package wraps the docker SDK behind the ContainerEngine interface:
- engine.py: DockerEngine facade and ContainerConfig
- utils.py: Shared utilities for container operations
"""

from .engine import ContainerConfig, DockerEngine
from .utils import wait_for_container_ready, build_file_archive, run_in_executor

__all__ = [
    "ContainerConfig",
    "DockerEngine",
    "wait_for_container_ready",
    "build_file_archive",
    "run_in_executor",
]
