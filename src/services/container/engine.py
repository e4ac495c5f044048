"""Docker-backed container engine.

Thin async facade over the docker SDK. Blocking SDK calls run in the
default executor; every failure is converted into a return value so that a
docker hiccup never propagates into the sandbox store or pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import docker
import structlog
from docker.errors import DockerException, NotFound

from ...models.errors import ServiceUnavailableError
from ...models.execution import CommandOutcome
from .utils import (
    build_file_archive,
    run_in_executor,
    split_remote_path,
    wait_for_container_ready,
)

logger = structlog.get_logger(__name__)

MANAGED_LABEL = "com.code-runner.managed"


@dataclass
class ContainerConfig:
    """Isolation and resource limits for a sandbox container."""

    image: str
    entry_command: str = "/bin/bash"
    pids_limit: int = 512
    memory_bytes: int = 256000000
    memory_swap_bytes: int = 256000000
    network_disabled: bool = True
    cap_drop: List[str] = field(default_factory=lambda: ["ALL"])
    no_new_privileges: bool = True

    @classmethod
    def from_settings(cls) -> "ContainerConfig":
        """Create a container config from the resources settings."""
        from ...config import settings

        resources = settings.resources
        return cls(
            image=resources.docker_image,
            entry_command=resources.container_entry_command,
            pids_limit=resources.container_pids_limit,
            memory_bytes=resources.container_memory_bytes,
            memory_swap_bytes=resources.container_memory_swap_bytes,
            network_disabled=resources.container_network_disabled,
            cap_drop=list(resources.container_cap_drop),
            no_new_privileges=resources.container_no_new_privileges,
        )

    def to_run_kwargs(self, name: str) -> Dict[str, Any]:
        """Translate into ``docker.containers.run`` keyword arguments."""
        kwargs: Dict[str, Any] = {
            "image": self.image,
            "command": self.entry_command,
            "name": name,
            "entrypoint": "",
            "detach": True,
            "tty": True,
            "stdin_open": True,
            "pids_limit": self.pids_limit,
            "mem_limit": self.memory_bytes,
            "memswap_limit": self.memory_swap_bytes,
            "cap_drop": list(self.cap_drop),
            "labels": {MANAGED_LABEL: "true"},
        }
        if self.network_disabled:
            kwargs["network_mode"] = "none"
        if self.no_new_privileges:
            kwargs["security_opt"] = ["no-new-privileges"]
        return kwargs


class DockerEngine:
    """Container engine backed by the local docker daemon."""

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        """Lazy initialization of the docker client.

        Raises:
            ServiceUnavailableError: if no docker daemon can be reached
        """
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise ServiceUnavailableError("docker", str(e)) from e
        return self._client

    async def ping(self) -> bool:
        """Check whether the docker daemon is reachable."""
        try:
            return bool(await run_in_executor(self.client.ping))
        except Exception as e:
            logger.warning("Docker daemon unreachable", error=str(e))
            return False

    async def create(self, handle: str, config: ContainerConfig) -> bool:
        """Start a detached container named ``handle`` and wait until it runs."""
        kwargs = config.to_run_kwargs(handle)
        try:
            container = await run_in_executor(
                lambda: self.client.containers.run(**kwargs)
            )
        except Exception as e:
            logger.error(
                "Failed to start container",
                sandbox_id=handle[:12],
                image=config.image,
                error=str(e),
            )
            return False

        if not await wait_for_container_ready(container):
            logger.error("Container did not reach running state", sandbox_id=handle[:12])
            return False

        logger.debug("Started container", sandbox_id=handle[:12], image=config.image)
        return True

    async def copy_file(self, handle: str, local_path: str, remote_path: str) -> bool:
        """Copy a host file into the container at ``remote_path``."""
        directory, filename = split_remote_path(remote_path)
        try:
            archive = build_file_archive(local_path, filename)
            container = await self._get(handle)
            ok = await run_in_executor(container.put_archive, directory, archive)
            if not ok:
                logger.error(
                    "Container rejected file upload",
                    sandbox_id=handle[:12],
                    remote_path=remote_path,
                )
            return bool(ok)
        except Exception as e:
            logger.error(
                "Failed to copy file into container",
                sandbox_id=handle[:12],
                remote_path=remote_path,
                error=str(e),
            )
            return False

    async def exec(self, handle: str, command: List[str]) -> CommandOutcome:
        """Run ``command`` in the container with stdout and stderr separated."""
        try:
            container = await self._get(handle)
            result = await run_in_executor(
                lambda: container.exec_run(command, demux=True)
            )
        except Exception as e:
            logger.warning(
                "Failed to exec in container",
                sandbox_id=handle[:12],
                command=command[0] if command else "",
                error=str(e),
            )
            return CommandOutcome.failed(str(e))

        stdout, stderr = result.output if result.output else (None, None)
        return CommandOutcome.completed(result.exit_code, stdout, stderr)

    async def kill(self, handle: str) -> bool:
        """Kill the container's main process."""
        try:
            container = await self._get(handle)
            await run_in_executor(container.kill)
            return True
        except Exception as e:
            logger.debug("Failed to kill container", sandbox_id=handle[:12], error=str(e))
            return False

    async def remove(self, handle: str) -> bool:
        """Force-remove the container; an already-missing container counts as removed."""
        try:
            container = await self._get(handle)
            await run_in_executor(lambda: container.remove(force=True))
            return True
        except NotFound:
            return True
        except Exception as e:
            logger.debug("Failed to remove container", sandbox_id=handle[:12], error=str(e))
            return False

    async def _get(self, handle: str):
        return await run_in_executor(self.client.containers.get, handle)
