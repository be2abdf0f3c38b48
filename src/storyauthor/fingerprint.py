"""Content-addressed cache keys for completion requests.

The key depends only on the conversation and the temperature. Model, endpoint,
API key and the streaming flag are deliberately left out, so the same prompt
sent to another provider hits the same cache entry.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from storyauthor.models.completion import Message

if TYPE_CHECKING:
    from storyauthor.models.completion import CompletionRequest

# 32 hex chars = 128 bits of SHA-256
_KEY_LENGTH = 32


def _canonical_message(message: Message | Mapping[str, str]) -> dict[str, str]:
    if isinstance(message, Mapping):
        # Same validation as Message: a None or non-str content is rejected, not stringified
        message = Message.model_validate(message)
    return {"role": message.role, "content": message.content}


def fingerprint(
    messages: Sequence[Message | Mapping[str, str]],
    temperature: float | None = None,
) -> str:
    """Return a short hex key for ``(messages, temperature)``.

    ``temperature=None`` serializes as ``null`` and therefore never collides
    with ``0``. Numerically equal temperatures (``1`` and ``1.0``) produce the
    same key.

    Raises:
        pydantic.ValidationError: A mapping message has a missing or non-string
            role or content.
    """
    payload = {
        "messages": [_canonical_message(m) for m in messages],
        "temperature": None if temperature is None else float(temperature),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:_KEY_LENGTH]


def request_fingerprint(request: CompletionRequest) -> str:
    return fingerprint(request.messages, request.temperature)
