"""Completions-style provider adapter (flat message array, function tools)."""

from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Any

from loguru import logger

from chat_gateway.errors import GatewayError, ModelUnavailableError, ProviderError
from chat_gateway.models.catalog import Provider, clamp_max_tokens, is_restricted_model
from chat_gateway.models.ir import (
    EMPTY_RESPONSE_PLACEHOLDER,
    CompletionResult,
    Message,
    ToolCallRequest,
    Usage,
)
from chat_gateway.services.providers.base import ProviderAdapter, ToolChoice
from chat_gateway.services.providers.client import create_http_client
from chat_gateway.services.providers.sse import decode_sse_frames
from chat_gateway.services.tools.registry import ToolRegistry

OPENAI_API_URL = "https://api.openai.com"

# Provider-declared error codes meaning "this model does not exist for you"
MODEL_UNAVAILABLE_CODES = frozenset(
    {"model_not_found", "unsupported_model", "model_not_available"}
)


def usage_from_completions(raw: dict[str, Any] | None) -> Usage:
    """Normalize a completions-style usage block."""
    raw = raw or {}
    prompt = int(raw.get("prompt_tokens") or 0)
    completion = int(raw.get("completion_tokens") or 0)
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=int(raw.get("total_tokens") or prompt + completion),
    )


class CompletionsAdapter(ProviderAdapter):
    """Adapter for the completions-style protocol.

    Sends the whole conversation, system turns included, as one message
    array. Tool calls come back attached to the assistant message, and the
    caller (ToolExecutionLoop or StreamRelay) drives the tool round-trip.
    Streams natively over server-sent events.
    """

    provider = Provider.COMPLETIONS
    native_streaming = True
    endpoint = "/v1/chat/completions"

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def build_request(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool,
        stream: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        restricted = is_restricted_model(model)
        request: dict[str, Any] = {
            "model": model,
            "messages": [self._serialize_message(m) for m in conversation],
        }

        # Restricted families reject max_tokens, temperature and tools
        if restricted:
            request["max_completion_tokens"] = max_tokens
        else:
            request["max_tokens"] = max_tokens
            request["temperature"] = self.temperature
            if tools_enabled and len(self._tools):
                request["tools"] = self._tools.completions_schemas()
                request["tool_choice"] = tool_choice

        if stream:
            request["stream"] = True
            request["stream_options"] = {"include_usage": True}
        return request

    @staticmethod
    def _serialize_message(message: Message) -> dict[str, Any]:
        if message.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        if message.role == "assistant" and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments_json},
                    }
                    for call in message.tool_calls
                ],
            }
        return {"role": message.role, "content": message.content}

    def parse_response(self, payload: dict[str, Any], model: str) -> CompletionResult:
        choices = payload.get("choices") or []
        if not choices:
            raise ProviderError(
                "completions provider returned no choices", self.provider.value
            )
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = [
            ToolCallRequest(
                id=raw.get("id", ""),
                name=(raw.get("function") or {}).get("name", ""),
                arguments_json=(raw.get("function") or {}).get("arguments") or "{}",
            )
            for raw in message.get("tool_calls") or []
        ]

        text = message.get("content") or ""
        if not text.strip() and not tool_calls:
            logger.warning(f"Empty response from {model}, substituting placeholder")
            text = EMPTY_RESPONSE_PLACEHOLDER

        return CompletionResult(
            text=text,
            usage=usage_from_completions(payload.get("usage")),
            resolved_model=payload.get("model") or model,
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "stop",
        )

    def classify_error(
        self, status_code: int, payload: dict[str, Any], model: str
    ) -> GatewayError:
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        message = error.get("message") or f"HTTP {status_code}"
        code = error.get("code")

        if code in MODEL_UNAVAILABLE_CODES or (
            status_code == 404 and error.get("param") == "model"
        ):
            return ModelUnavailableError(message, model=model)
        return ProviderError(message, self.provider.value, status_code)

    async def stream(  # type: ignore[override]
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Stream decoded JSON frames until [DONE]."""
        request_data = self.build_request(
            conversation,
            model,
            clamp_max_tokens(model, max_tokens),
            tools_enabled,
            stream=True,
            tool_choice=tool_choice,
        )
        # Closing the line source ends the upstream HTTP stream, also on early exit
        async with aclosing(self._stream_lines(request_data, model)) as lines:
            async for frame in decode_sse_frames(lines):
                yield frame


def create_completions_adapter(
    api_key: str | None,
    base_url: str = OPENAI_API_URL,
    tools: ToolRegistry | None = None,
    temperature: float = 0.7,
    timeout: float = 60.0,
    **client_kwargs: Any,
) -> CompletionsAdapter:
    """Create a completions-style adapter with its own shared HTTP client.

    Args:
        api_key: Provider API key (None leaves the adapter unconfigured)
        base_url: API base URL
        tools: Tools the model may call
        temperature: Sampling temperature for non-restricted models
        timeout: Per-call timeout in seconds
        **client_kwargs: Retry settings passed to create_http_client

    Returns:
        Configured CompletionsAdapter instance
    """
    client = create_http_client(base_url=base_url, timeout=timeout, **client_kwargs)
    return CompletionsAdapter(client, api_key, tools=tools, temperature=temperature)
