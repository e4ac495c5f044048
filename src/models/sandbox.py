"""Sandbox data models.

A Sandbox is the record tracking one user's isolated execution environment
together with the conversation it answers to.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SandboxState(str, Enum):
    """Lifecycle state of a sandbox's container."""

    PROVISIONING = "provisioning"
    READY = "ready"
    COMPILING = "compiling"
    RUNNING = "running"
    TERMINATING = "terminating"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class ThreadRef:
    """Where a sandbox's request came from and where its reply goes.

    ``native`` holds the chat client's own message object. The sandbox never
    owns that message's lifecycle.
    """

    message_id: str
    channel_id: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass
class Sandbox:
    """Represents one user's execution environment."""

    identity: str
    container_handle: str
    thread_ref: ThreadRef
    created_at: float
    last_activity_at: float
    reply_ref: Any = None
    state: SandboxState = SandboxState.PROVISIONING
    provisioned: bool = False
    provision_error: Optional[str] = None
    hard_timer: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def source_message_id(self) -> str:
        """ID of the chat message this sandbox was created from."""
        return self.thread_ref.message_id

    @property
    def is_terminal(self) -> bool:
        return self.state in (SandboxState.TERMINATING, SandboxState.DESTROYED)

    def touch(self, now: float) -> None:
        self.last_activity_at = now

    def is_idle(self, now: float, idle_timeout: float) -> bool:
        return now - self.last_activity_at > idle_timeout
