"""Configuration management for the code runner.

This module provides a unified Settings class with flat fields (one per
environment variable) and grouped read-only views over them.

Usage:
    from src.config import settings

    # Access grouped settings
    settings.sandbox.sandbox_idle_timeout_seconds
    settings.resources.container_pids_limit

    # Or use flat access
    settings.sandbox_idle_timeout_seconds
    settings.docker_image
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Import grouped configurations
from .api import APIConfig
from .logging import LoggingConfig
from .resources import ResourcesConfig
from .sandbox import SandboxConfig
from .modes import (
    MODES,
    ModeConfig,
    get_mode,
    get_supported_modes,
)

DEFAULT_TEMPLATES_DIR = str(Path(__file__).resolve().parent.parent / "templates")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # CHAT PLATFORM
    # ========================================================================

    discord_token: Optional[str] = Field(
        default=None, description="Bot token; the chat client is not started without it"
    )
    command_prefix: str = Field(default="?", min_length=1, max_length=1)

    # ========================================================================
    # CONTAINER RESOURCES
    # ========================================================================

    docker_image: str = Field(
        default="code-runner-cpp:latest",
        description="Image providing g++ and valgrind",
    )
    container_entry_command: str = Field(default="/bin/bash")
    container_pids_limit: int = Field(default=512, ge=16, le=65536)
    container_memory_bytes: int = Field(default=256000000, ge=16000000)
    container_memory_swap_bytes: int = Field(default=256000000, ge=16000000)
    container_network_disabled: bool = Field(default=True)
    container_cap_drop: List[str] = Field(default_factory=lambda: ["ALL"])
    container_no_new_privileges: bool = Field(default=True)

    # ========================================================================
    # SANDBOX LIFECYCLE
    # ========================================================================

    sandbox_idle_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Inactivity after which a sandbox is treated as gone",
    )
    sandbox_hard_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=600,
        description="Delay after staging after which the container is destroyed",
    )
    sandbox_source_dir: str = Field(default="/usr/src")
    compiler_command: str = Field(default="g++")
    templates_dir: str = Field(default=DEFAULT_TEMPLATES_DIR)

    # ========================================================================
    # OUTPUT RENDERING
    # ========================================================================

    output_language: str = Field(default="cpp")
    output_max_chars: int = Field(default=800, ge=100, le=4000)
    output_max_lines: int = Field(default=30, ge=1, le=200)

    # ========================================================================
    # HEALTH API
    # ========================================================================

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1, le=65535)
    api_reload: bool = Field(default=False)
    enable_health_api: bool = Field(default=True)
    enable_access_logs: bool = Field(default=False)

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @validator("command_prefix")
    def validate_command_prefix(cls, v):
        """Reject whitespace and backticks as the command prefix."""
        if v.isspace() or v == "`":
            raise ValueError("command_prefix must be a visible non-backtick character")
        return v

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only json and console renderers are supported."""
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @validator("container_memory_swap_bytes")
    def validate_swap_covers_memory(cls, v, values):
        """Docker rejects a swap limit below the memory limit."""
        memory = values.get("container_memory_bytes")
        if memory is not None and v < memory:
            raise ValueError("container_memory_swap_bytes must be >= container_memory_bytes")
        return v

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def sandbox(self) -> SandboxConfig:
        """Access sandbox lifecycle configuration group."""
        return SandboxConfig(
            sandbox_idle_timeout_seconds=self.sandbox_idle_timeout_seconds,
            sandbox_hard_timeout_seconds=self.sandbox_hard_timeout_seconds,
            sandbox_source_dir=self.sandbox_source_dir,
            compiler_command=self.compiler_command,
        )

    @property
    def resources(self) -> ResourcesConfig:
        """Access container resources configuration group."""
        return ResourcesConfig(
            docker_image=self.docker_image,
            container_entry_command=self.container_entry_command,
            container_pids_limit=self.container_pids_limit,
            container_memory_bytes=self.container_memory_bytes,
            container_memory_swap_bytes=self.container_memory_swap_bytes,
            container_network_disabled=self.container_network_disabled,
            container_cap_drop=self.container_cap_drop,
            container_no_new_privileges=self.container_no_new_privileges,
        )

    @property
    def api(self) -> APIConfig:
        """Access health API configuration group."""
        return APIConfig(
            api_host=self.api_host,
            api_port=self.api_port,
            api_reload=self.api_reload,
            enable_health_api=self.enable_health_api,
            enable_access_logs=self.enable_access_logs,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
        )

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    @property
    def chat_enabled(self) -> bool:
        """Whether a chat client should be started."""
        return bool(self.discord_token)


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    # Grouped configs
    "APIConfig",
    "LoggingConfig",
    "ResourcesConfig",
    "SandboxConfig",
    # Mode configuration
    "MODES",
    "ModeConfig",
    "get_mode",
    "get_supported_modes",
]
