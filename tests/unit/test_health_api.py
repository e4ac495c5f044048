"""Unit tests for the health endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api import health
from src.dependencies.services import (
    get_chat_client,
    get_container_engine,
    get_sandbox_store,
)


def build_client(docker_ok=True, chat_client=None, active=0):
    app = FastAPI()
    app.include_router(health.router)

    engine = MagicMock()
    engine.ping = AsyncMock(return_value=docker_ok)
    store = MagicMock()
    store.__len__.return_value = active

    app.dependency_overrides[get_container_engine] = lambda: engine
    app.dependency_overrides[get_sandbox_store] = lambda: store
    app.dependency_overrides[get_chat_client] = lambda: chat_client
    return TestClient(app)


class TestBasicHealth:
    """Test the liveness endpoint."""

    def test_health(self):
        """Basic health always reports healthy."""
        response = build_client().get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "code-runner"
        assert "version" in body


class TestDetailedHealth:
    """Test the dependency-aware endpoint."""

    def test_all_healthy(self):
        """Docker up and chat connected is healthy."""
        chat_client = MagicMock(is_connected=True)

        response = build_client(chat_client=chat_client, active=3).get("/health/detailed")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"] == {"docker": "healthy", "chat": "healthy"}
        assert body["active_sandboxes"] == 3

    def test_chat_disabled(self):
        """Without a chat client the chat service is reported disabled."""
        response = build_client(chat_client=None).get("/health/detailed")

        assert response.status_code == 200
        assert response.json()["services"]["chat"] == "disabled"

    def test_docker_unreachable(self):
        """An unreachable docker daemon makes the service unhealthy."""
        response = build_client(docker_ok=False).get("/health/detailed")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["services"]["docker"] == "unhealthy"

    @pytest.mark.parametrize("docker_ok,expected", [(True, 200), (False, 503)])
    def test_chat_disconnected(self, docker_ok, expected):
        """A disconnected chat client degrades, docker failure dominates."""
        chat_client = MagicMock(is_connected=False)

        response = build_client(docker_ok=docker_ok, chat_client=chat_client).get(
            "/health/detailed"
        )

        assert response.status_code == expected
        if docker_ok:
            assert response.json()["status"] == "degraded"
            assert response.headers["X-Health-Status"] == "degraded"
