"""Error types shared by the chat services and the HTTP layer."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorDetail:
    """Structured error information returned to API callers."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ChatServiceError(Exception):
    """Base exception carrying a structured ErrorDetail."""

    code = "CHAT_SERVICE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.error = ErrorDetail(code=code or self.code, message=message, details=details or {})
        super().__init__(message)


class InvalidArgumentError(ChatServiceError, ValueError):
    """Missing or malformed input, rejected before any I/O."""

    code = "INVALID_ARGUMENT"


class NotFoundError(ChatServiceError):
    """The referenced session does not exist."""

    code = "NOT_FOUND"


class DependencyFailureError(ChatServiceError):
    """A store, embedding or completion call failed or timed out."""

    code = "DEPENDENCY_FAILURE"
