"""Sandbox lifecycle services.

- store.py: SandboxStore, the per-user registry of sandboxes
"""

from .store import SandboxStore

__all__ = [
    "SandboxStore",
]
