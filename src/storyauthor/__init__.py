"""Chat completion client with caching, streaming and cancellation."""

from __future__ import annotations

__version__ = "0.1.0"

from storyauthor.cache import CompletionCache  # noqa: E402
from storyauthor.client import CompletionClient, build_http_client  # noqa: E402
from storyauthor.completion_stream import CompletionStream  # noqa: E402
from storyauthor.errors import (  # noqa: E402
    ClientBusyError,
    ErrorCode,
    HttpStatusError,
    NetworkError,
    RequestCancelledError,
    StoryAuthorError,
)
from storyauthor.fingerprint import fingerprint  # noqa: E402
from storyauthor.models import (  # noqa: E402
    CompletionRequest,
    CompletionResult,
    CompletionStatus,
    Message,
)

__all__ = [
    "__version__",
    "CompletionCache",
    "CompletionClient",
    "CompletionStream",
    "build_http_client",
    "fingerprint",
    # models
    "Message",
    "CompletionRequest",
    "CompletionResult",
    "CompletionStatus",
    # errors
    "ErrorCode",
    "StoryAuthorError",
    "HttpStatusError",
    "NetworkError",
    "RequestCancelledError",
    "ClientBusyError",
]
