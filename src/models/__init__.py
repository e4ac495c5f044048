"""Data models for the code runner."""

from .sandbox import Sandbox, SandboxState, ThreadRef
from .execution import CommandOutcome, ExecutionMode, ParsedCommand
from .chat import ChatEdit, ChatMessage
from .errors import (
    ErrorType,
    CodeRunnerException,
    ValidationError,
    MissingCodeBlockError,
    ForbiddenCodeError,
    ServiceUnavailableError,
    MISSING_CODE_BLOCK_MESSAGE,
    FORBIDDEN_CHARACTER_MESSAGE,
)

__all__ = [
    # Sandbox models
    "Sandbox",
    "SandboxState",
    "ThreadRef",
    # Execution models
    "CommandOutcome",
    "ExecutionMode",
    "ParsedCommand",
    # Chat event models
    "ChatEdit",
    "ChatMessage",
    # Error models
    "ErrorType",
    "CodeRunnerException",
    "ValidationError",
    "MissingCodeBlockError",
    "ForbiddenCodeError",
    "ServiceUnavailableError",
    "MISSING_CODE_BLOCK_MESSAGE",
    "FORBIDDEN_CHARACTER_MESSAGE",
]
