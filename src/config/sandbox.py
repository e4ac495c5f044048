"""Sandbox lifecycle configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


class SandboxConfig(BaseSettings):
    """Sandbox store and pipeline timing settings."""

    sandbox_idle_timeout_seconds: float = Field(default=60.0, gt=0, le=3600)
    sandbox_hard_timeout_seconds: float = Field(default=5.0, gt=0, le=600)
    sandbox_source_dir: str = Field(default="/usr/src")
    compiler_command: str = Field(default="g++")

    class Config:
        env_prefix = ""
        extra = "ignore"
