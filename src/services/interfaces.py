"""Interfaces for the external collaborators the services depend on.

The container engine and the chat platform are consumed as black boxes.
Services accept anything implementing these protocols, which keeps the
store and pipeline testable with fakes.
"""

from typing import Any, List, Protocol, runtime_checkable

from ..models.execution import CommandOutcome
from ..models.sandbox import ThreadRef


@runtime_checkable
class ContainerEngine(Protocol):
    """Isolation primitive used to host sandboxes.

    No method raises. Failures are reported through the return value and
    logged by the implementation.
    """

    async def create(self, handle: str, config: Any) -> bool:
        """Start an isolated environment named ``handle``.

        Returns once the environment accepts exec calls.
        """
        ...

    async def copy_file(self, handle: str, local_path: str, remote_path: str) -> bool:
        """Copy a local file into the environment."""
        ...

    async def exec(self, handle: str, command: List[str]) -> CommandOutcome:
        """Run a command, capturing its streams whatever its exit status."""
        ...

    async def kill(self, handle: str) -> bool:
        """Stop the environment's processes."""
        ...

    async def remove(self, handle: str) -> bool:
        """Force-remove the environment."""
        ...


@runtime_checkable
class ChatPlatform(Protocol):
    """Outbound side of the chat client."""

    async def send_message(self, thread: ThreadRef, text: str) -> Any:
        """Send a new message in reply to ``thread``; returns a reply reference."""
        ...

    async def edit_message(self, reply: Any, text: str) -> None:
        """Replace the text of a previously sent reply."""
        ...
