import json

import httpx
import pytest

from llmrelay.client import ChatClient
from llmrelay.retry import RetryPolicy
from llmrelay.types import ProviderConfig


@pytest.fixture
def mock_env(monkeypatch):
    """Mock LLMRELAY_* environment variables."""
    monkeypatch.setenv("LLMRELAY_PROVIDER", "anthropic")
    monkeypatch.setenv("LLMRELAY_ENDPOINT", "https://api.anthropic.com/v1")
    monkeypatch.setenv("LLMRELAY_MODEL", "claude-3-5-haiku-latest")
    monkeypatch.setenv("LLMRELAY_TOKEN", "sk-test-anthropic")
    monkeypatch.setenv("LLMRELAY_CHAT_PATH", "/messages")
    monkeypatch.setenv("LLMRELAY_TEMPERATURE", "0.5")
    monkeypatch.setenv("LLMRELAY_MAX_TOKENS", "512")
    monkeypatch.setenv("LLMRELAY_ENABLE_TOOLS", "true")


@pytest.fixture
def openai_config():
    return ProviderConfig(
        provider="openai",
        endpoint="https://api.openai.com/v1",
        model="gpt-4o",
        token="sk-test-openai",
        chat_path="/chat/completions",
    )


@pytest.fixture
def anthropic_config():
    return ProviderConfig(
        provider="anthropic",
        endpoint="https://api.anthropic.com/v1",
        model="claude-3-5-haiku-latest",
        token="sk-test-anthropic",
        chat_path="/messages",
    )


@pytest.fixture
def gemini_config():
    return ProviderConfig(
        provider="gemini",
        endpoint="https://generativelanguage.googleapis.com/v1beta",
        model="gemini-pro",
        token="AIza-test-google",
        chat_path="/models/{model}:generateContent",
    )


@pytest.fixture
def openai_tool_response():
    return {
        "choices": [{
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": "1",
                    "type": "function",
                    "function": {"name": "web_search", "arguments": json.dumps({"query": "x"})},
                }],
            },
            "finish_reason": "tool_calls",
        }],
    }


@pytest.fixture
def anthropic_tool_response():
    return {
        "content": [
            {"type": "text", "text": "Let me search."},
            {"type": "tool_use", "id": "1", "name": "web_search", "input": {"query": "x"}},
        ],
        "stop_reason": "tool_use",
    }


@pytest.fixture
def gemini_tool_response():
    return {
        "candidates": [{
            "content": {
                "role": "model",
                "parts": [{"functionCall": {"name": "web_search", "args": {"query": "x"}}}],
            },
        }],
    }


def text_response(provider, text):
    """Native non-streaming text response for ``provider``."""
    if provider == "openai":
        return {"choices": [{"message": {"role": "assistant", "content": text}}]}
    if provider == "anthropic":
        return {"content": [{"type": "text", "text": text}]}
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class RecordingHandler:
    """
    MockTransport handler that records requests and replays queued responses.

    The last queued response repeats. ``(status, body)`` tuples build a fresh
    JSON response on every call; Response objects are returned as-is.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, tuple):
            status, body = response
            return httpx.Response(status, json=body)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def make_client():
    """Build a ChatClient backed by httpx.MockTransport and no backoff delay."""
    clients = []

    def _make(handler, max_attempts=4):
        client = ChatClient(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay_s=0),
        )
        clients.append(client)
        return client

    return _make
