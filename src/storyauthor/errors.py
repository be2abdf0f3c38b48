"""Error taxonomy for the completion client.

Only the errors defined here cross the client boundary. Storage failures and
malformed streaming lines are absorbed where they occur and logged.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    HTTP_ERROR = "HTTP_ERROR"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    CANCELLED = "CANCELLED"
    BUSY = "BUSY"


class StoryAuthorError(Exception):
    """Base error carrying a machine-readable code."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable


class HttpStatusError(StoryAuthorError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(
            ErrorCode.HTTP_ERROR,
            f"HTTP error! status: {status_code}, body: {body}",
            recoverable=status_code == 429 or status_code >= 500,
        )
        self.status_code = status_code
        self.body = body


class NetworkError(StoryAuthorError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.NETWORK_FAILURE, message, recoverable=True)


class RequestCancelledError(StoryAuthorError):
    def __init__(self, message: str = "Request was cancelled") -> None:
        super().__init__(ErrorCode.CANCELLED, message)


class ClientBusyError(StoryAuthorError):
    def __init__(self, message: str = "Another request is already in progress") -> None:
        super().__init__(ErrorCode.BUSY, message, recoverable=True)
