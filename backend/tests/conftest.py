"""Pytest fixtures for gateway tests."""

import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment before importing gateway modules
os.environ["CHAT_GATEWAY_LOGFIRE_ENABLED"] = "false"
os.environ["CHAT_GATEWAY_DISABLE_TELEMETRY"] = "true"

from chat_gateway.config import GatewaySettings
from chat_gateway.main import create_app
from chat_gateway.models.catalog import Provider
from chat_gateway.services.gateway import ChatGateway
from chat_gateway.services.providers import CompletionsAdapter, MessagesAdapter
from chat_gateway.services.tools import ToolDefinition, ToolRegistry


class MockUpstream:
    """Scripted upstream behind an httpx.MockTransport.

    Responses are served in the order they were queued. Every request is
    recorded with its decoded JSON body (or None for GETs).
    """

    def __init__(self) -> None:
        self._responses: list[Callable[[httpx.Request], httpx.Response]] = []
        self.requests: list[httpx.Request] = []

    @property
    def bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def queue_json(self, payload: Any, status_code: int = 200) -> None:
        self._responses.append(lambda request: httpx.Response(status_code, json=payload))

    def queue_text(
        self, text: str, status_code: int = 200, content_type: str = "text/html"
    ) -> None:
        self._responses.append(
            lambda request: httpx.Response(
                status_code, text=text, headers={"content-type": content_type}
            )
        )

    def queue_sse(self, frames: list[dict[str, Any] | str], done: bool = True) -> None:
        lines = [f"data: {f if isinstance(f, str) else json.dumps(f)}\n\n" for f in frames]
        if done:
            lines.append("data: [DONE]\n\n")
        body = "".join(lines).encode()
        self._responses.append(
            lambda request: httpx.Response(
                200, content=body, headers={"content-type": "text/event-stream"}
            )
        )

    def queue_error(self, exc: Exception) -> None:
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc

        self._responses.append(raise_error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected upstream call: {request.method} {request.url}")
        return self._responses.pop(0)(request)

    def client(self, base_url: str = "https://upstream.test") -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(self.handler))


def completions_payload(
    text: str | None = "hi",
    model: str = "gpt-4o-mini-2024-07-18",
    tool_calls: list[dict[str, Any]] | None = None,
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> dict[str, Any]:
    """A completions-style buffered response body."""
    message: dict[str, Any] = {"role": "assistant", "content": text}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def messages_payload(
    text: str = "hi",
    model: str = "claude-sonnet-4-5-20250929",
    tool_use: dict[str, Any] | None = None,
    input_tokens: int = 12,
    output_tokens: int = 4,
) -> dict[str, Any]:
    """A messages-style response body."""
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    if tool_use:
        content.append({"type": "tool_use", **tool_use})
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": content,
        "stop_reason": "tool_use" if tool_use else "end_turn",
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def function_call(call_id: str = "call_1", query: str = "latest news") -> dict[str, Any]:
    """A completions-style tool call requesting web_search."""
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": "web_search", "arguments": json.dumps({"query": query})},
    }


@pytest.fixture
def upstream() -> MockUpstream:
    """Mock provider API."""
    return MockUpstream()


@pytest.fixture
def search_calls() -> list[dict[str, Any]]:
    """Arguments received by the fake web_search tool."""
    return []


@pytest.fixture
def registry(search_calls: list[dict[str, Any]]) -> ToolRegistry:
    """Registry with a fake web_search tool that records its arguments."""

    async def fake_search(arguments: dict[str, Any]) -> str:
        search_calls.append(arguments)
        return json.dumps([{"title": "Result", "url": "https://example.com", "description": "d"}])

    return ToolRegistry([ToolDefinition("web_search", "Search the web", fake_search)])


@pytest.fixture
def completions_adapter(upstream: MockUpstream, registry: ToolRegistry) -> CompletionsAdapter:
    return CompletionsAdapter(upstream.client(), "sk-test", tools=registry)


@pytest.fixture
def messages_adapter(upstream: MockUpstream, registry: ToolRegistry) -> MessagesAdapter:
    return MessagesAdapter(upstream.client(), "sk-ant-test", tools=registry)


@pytest.fixture
def gateway(
    completions_adapter: CompletionsAdapter,
    messages_adapter: MessagesAdapter,
    registry: ToolRegistry,
) -> ChatGateway:
    """Gateway over mocked upstreams for both providers."""
    return ChatGateway(
        {Provider.COMPLETIONS: completions_adapter, Provider.MESSAGES: messages_adapter},
        registry,
    )


@pytest.fixture
def settings() -> GatewaySettings:
    """Settings isolated from the environment and any .env file."""
    return GatewaySettings(
        _env_file=None,
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        logfire_enabled=False,
    )


@pytest.fixture
async def client(
    settings: GatewaySettings, gateway: ChatGateway
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client over an app with the mocked gateway injected."""
    app = create_app(settings=settings, gateway=gateway)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def parse_sse_events(content: str) -> list[dict[str, Any]]:
    """Decode the JSON payload of every `data:` line in an SSE body."""
    return [
        json.loads(line[len("data:") :].strip())
        for line in content.splitlines()
        if line.startswith("data:")
    ]
