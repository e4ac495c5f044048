"""Health API server configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """Settings for the HTTP health surface."""

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1, le=65535)
    api_reload: bool = Field(default=False)
    enable_health_api: bool = Field(default=True)
    enable_access_logs: bool = Field(default=False)

    class Config:
        env_prefix = ""
        extra = "ignore"
