"""API endpoints for the code runner."""

from . import health

__all__ = ["health"]
