"""Execution request and outcome models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExecutionMode(str, Enum):
    """Command words accepted after the chat prefix."""

    PLAY = "play"
    EVAL = "eval"
    VALGRIND = "valgrind"


@dataclass(frozen=True)
class ParsedCommand:
    """A recognized chat command with its isolated code."""

    mode: ExecutionMode
    code: str


@dataclass
class CommandOutcome:
    """Result of asking the container engine to run a command.

    ``invoked`` is False only when the command could not be dispatched at
    all (engine unreachable, container gone). A command that ran and exited
    non-zero is still ``invoked``, with its captured streams.
    """

    invoked: bool
    exit_code: Optional[int] = None
    stdout: bytes = b""
    stderr: bytes = b""
    error: Optional[str] = None

    @classmethod
    def completed(
        cls, exit_code: Optional[int], stdout: Optional[bytes], stderr: Optional[bytes]
    ) -> "CommandOutcome":
        return cls(
            invoked=True,
            exit_code=exit_code,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )

    @classmethod
    def failed(cls, error: str) -> "CommandOutcome":
        return cls(invoked=False, error=error)

    @property
    def has_stderr(self) -> bool:
        return bool(self.stderr)
