"""Error models and exception classes for the code runner."""

from enum import Enum
from typing import Optional

MISSING_CODE_BLOCK_MESSAGE = (
    "Missing code block. Try wrapping your code with \\`...\\` or "
    "\\`\\`\\`cpp ... \\`\\`\\`."
)

FORBIDDEN_CHARACTER_MESSAGE = (
    "You cannot include additional headers in your code. Due to the complexity of C++, "
    "this means that you cannot include the '#' character in your code."
)


class ErrorType(str, Enum):
    """Error type enumeration."""

    VALIDATION = "validation"
    EXECUTION_FAILED = "execution_failed"
    INTERNAL_SERVER = "internal_server"
    SERVICE_UNAVAILABLE = "service_unavailable"


# Custom Exception Classes


class CodeRunnerException(Exception):
    """Base exception for the code runner."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
    ):
        self.message = message
        self.error_type = error_type
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to a loggable mapping."""
        return {"error": self.message, "error_type": self.error_type.value}


class ValidationError(CodeRunnerException):
    """User input errors. The message is shown to the user verbatim."""

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message=message, error_type=ErrorType.VALIDATION)


class MissingCodeBlockError(ValidationError):
    """The command was not followed by a usable code block."""

    def __init__(self, message: str = MISSING_CODE_BLOCK_MESSAGE):
        super().__init__(message)


class ForbiddenCodeError(ValidationError):
    """The snippet contains a character that is not allowed."""

    def __init__(self, character: str = "#", message: Optional[str] = None):
        self.character = character
        super().__init__(message or FORBIDDEN_CHARACTER_MESSAGE)


class ServiceUnavailableError(CodeRunnerException):
    """Service unavailable errors."""

    def __init__(self, service: str, message: str = None):
        error_message = message or f"{service} service is currently unavailable"
        self.service = service
        super().__init__(
            message=error_message,
            error_type=ErrorType.SERVICE_UNAVAILABLE,
        )
