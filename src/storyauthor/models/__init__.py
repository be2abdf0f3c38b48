from __future__ import annotations

from storyauthor.models.cache import CacheEntry, CacheTable
from storyauthor.models.completion import (
    CompletionRequest,
    CompletionResult,
    CompletionStatus,
    Message,
)

__all__ = [
    # cache
    "CacheEntry",
    "CacheTable",
    # completion
    "Message",
    "CompletionRequest",
    "CompletionResult",
    "CompletionStatus",
]
