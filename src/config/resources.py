"""Container resource limits configuration."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class ResourcesConfig(BaseSettings):
    """Resource and isolation limits applied to every sandbox container."""

    docker_image: str = Field(default="code-runner-cpp:latest")
    container_entry_command: str = Field(default="/bin/bash")
    container_pids_limit: int = Field(default=512, ge=16, le=65536)
    container_memory_bytes: int = Field(default=256000000, ge=16000000)
    container_memory_swap_bytes: int = Field(default=256000000, ge=16000000)
    container_network_disabled: bool = Field(default=True)
    container_cap_drop: List[str] = Field(default_factory=lambda: ["ALL"])
    container_no_new_privileges: bool = Field(default=True)

    def get_memory_mb(self) -> int:
        """Get the memory cap in megabytes."""
        return self.container_memory_bytes // 1_000_000

    class Config:
        env_prefix = ""
        extra = "ignore"
