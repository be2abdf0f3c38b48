from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from storyauthor.errors import ErrorCode, StoryAuthorError


class Message(BaseModel):
    """Single conversation turn."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    messages: list[Message]
    model: str
    temperature: float | None = None  # None means "not sent to the provider"
    stream: bool = False

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("model must not be empty")
        return v

    def to_payload(self, *, stream: bool) -> dict:
        """Request body for ``POST /chat/completions``."""
        payload: dict = {
            "model": self.model,
            "messages": [m.model_dump() for m in self.messages],
            "stream": stream,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload


class CompletionStatus(StrEnum):
    OK = "OK"
    HTTP_ERROR = ErrorCode.HTTP_ERROR.value
    NETWORK_FAILURE = ErrorCode.NETWORK_FAILURE.value
    CANCELLED = ErrorCode.CANCELLED.value
    BUSY = ErrorCode.BUSY.value


class CompletionResult(BaseModel):
    """Outcome of a completion, successful or not."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: CompletionStatus
    text: str = ""
    cached: bool = False
    error: StoryAuthorError | None = None

    @classmethod
    def success(cls, text: str, *, cached: bool = False) -> CompletionResult:
        return cls(status=CompletionStatus.OK, text=text, cached=cached)

    @classmethod
    def failure(cls, error: StoryAuthorError) -> CompletionResult:
        return cls(status=CompletionStatus(error.code.value), error=error)

    @property
    def ok(self) -> bool:
        return self.status is CompletionStatus.OK

    def unwrap(self) -> str:
        """Return the text, or raise the error that ended the completion."""
        if self.error is not None:
            raise self.error
        return self.text
