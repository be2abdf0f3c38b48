"""Shared fixtures: sample conversations and provider settings."""

from __future__ import annotations

import pytest

from storyauthor.config import ProviderSettings
from storyauthor.models import CompletionRequest, Message

BASE_URL = "https://api.test/v1"
API_KEY = "sk-test"


@pytest.fixture()
def provider() -> ProviderSettings:
    return ProviderSettings(base_url=BASE_URL, api_key=API_KEY, model="test-model")


@pytest.fixture()
def messages() -> list[Message]:
    return [
        Message(role="system", content="You are a careful story editor."),
        Message(role="user", content="Outline a story about a lighthouse keeper."),
    ]


@pytest.fixture()
def request_(messages: list[Message]) -> CompletionRequest:
    return CompletionRequest(messages=messages, model="test-model")
