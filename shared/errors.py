"""
Shared error handling for the Notice Relay.
"""

from enum import Enum
from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Discriminant carried by every relay error."""

    VALIDATION = "validation"
    AUTH = "auth"
    FETCH = "fetch"
    UPSTREAM = "upstream"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    message: str


class NoticeRelayException(Exception):
    """Base exception for Notice Relay services."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(message=self.message)


class ValidationError(NoticeRelayException):
    """Malformed inbound request (method, body schema)."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.VALIDATION, message, details)


class AuthError(NoticeRelayException):
    """Caller failed shared-secret authentication."""

    def __init__(self, message: str = "token is invalid", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.AUTH, message, details)


class FetchError(NoticeRelayException):
    """The identity endpoint did not issue an access token."""

    def __init__(self, message: str = "unknown error", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorKind.FETCH, message, details)


class UpstreamError(NoticeRelayException):
    """The push call failed, either while obtaining a token or sending."""

    CREDENTIAL_STAGE = "credential"
    PUSH_STAGE = "push"

    def __init__(self, message: str = "unknown error", stage: str = PUSH_STAGE,
                 details: Optional[Dict[str, Any]] = None):
        self.stage = stage
        super().__init__(ErrorKind.UPSTREAM, message, {"stage": stage, **(details or {})})
