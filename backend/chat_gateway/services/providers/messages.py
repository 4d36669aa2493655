"""Messages-style provider adapter (top-level system field, tool_use blocks)."""

import json
from typing import Any

import httpx
from loguru import logger

from chat_gateway.errors import (
    GatewayError,
    ModelUnavailableError,
    ProviderError,
    ValidationError,
)
from chat_gateway.models.catalog import Provider, clamp_max_tokens
from chat_gateway.models.ir import (
    EMPTY_RESPONSE_PLACEHOLDER,
    CompletionResult,
    Message,
    ToolCallRequest,
    Usage,
)
from chat_gateway.services.providers.base import ProviderAdapter, ToolChoice
from chat_gateway.services.providers.client import create_http_client
from chat_gateway.services.tools.registry import ToolRegistry

ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"

# Provider-declared error types meaning "this model does not exist for you"
MODEL_UNAVAILABLE_TYPES = frozenset({"not_found_error"})

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


def ensure_user_first(conversation: list[Message]) -> None:
    """The messages-style protocol requires the first non-system turn to be a user turn.

    Raises:
        ValidationError: If the conversation has no turns or starts otherwise
    """
    turns = [m for m in conversation if m.role != "system"]
    if not turns:
        raise ValidationError("messages must contain at least one user message")
    if turns[0].role != "user":
        raise ValidationError(
            f"The first message must have role 'user' for the messages provider "
            f"(got '{turns[0].role}')"
        )


def usage_from_messages(raw: dict[str, Any] | None) -> Usage:
    """Normalize a messages-style usage block."""
    raw = raw or {}
    prompt = int(raw.get("input_tokens") or 0)
    completion = int(raw.get("output_tokens") or 0)
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
    )


class MessagesAdapter(ProviderAdapter):
    """Adapter for the messages-style protocol.

    System turns are lifted into the top-level `system` field. When the
    model answers with tool_use blocks, this adapter runs the tools itself
    and makes the follow-up call, bounded by max_tool_rounds. Streaming is
    emulated by the relay from the buffered result.
    """

    provider = Provider.MESSAGES
    native_streaming = False
    endpoint = "/v1/messages"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None,
        tools: ToolRegistry | None = None,
        temperature: float = 0.7,
        anthropic_version: str = ANTHROPIC_VERSION,
        max_tool_rounds: int = 1,
    ):
        super().__init__(client, api_key, tools=tools, temperature=temperature)
        self._anthropic_version = anthropic_version
        self.max_tool_rounds = max_tool_rounds

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key or "",
            "anthropic-version": self._anthropic_version,
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
        ensure_user_first(conversation)

        system_content = "\n\n".join(
            m.content for m in conversation if m.role == "system" and m.content
        )
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": self._serialize_turns([m for m in conversation if m.role != "system"]),
            "temperature": self.temperature,
        }
        if system_content:
            request["system"] = system_content
        if tools_enabled and len(self._tools):
            request["tools"] = self._tools.messages_schemas()
            request["tool_choice"] = {"type": tool_choice}
        if stream:
            request["stream"] = True
        return request

    @staticmethod
    def _serialize_turns(turns: list[Message]) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = []
        for message in turns:
            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                # Consecutive results answer one assistant turn: one user turn
                previous = wire[-1] if wire else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    wire.append({"role": "user", "content": [block]})
            elif message.role == "assistant" and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    try:
                        arguments = call.arguments()
                    except ValueError:
                        arguments = {}
                    blocks.append(
                        {"type": "tool_use", "id": call.id, "name": call.name, "input": arguments}
                    )
                wire.append({"role": "assistant", "content": blocks})
            else:
                wire.append({"role": message.role, "content": message.content})
        return wire

    def parse_response(self, payload: dict[str, Any], model: str) -> CompletionResult:
        blocks = payload.get("content") or []
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        tool_calls = [
            ToolCallRequest(
                id=b.get("id", ""),
                name=b.get("name", ""),
                arguments_json=json.dumps(b.get("input") or {}),
            )
            for b in blocks
            if b.get("type") == "tool_use"
        ]
        stop_reason = payload.get("stop_reason") or "end_turn"
        return CompletionResult(
            text=text,
            usage=usage_from_messages(payload.get("usage")),
            resolved_model=payload.get("model") or model,
            tool_calls=tool_calls,
            finish_reason=STOP_REASONS.get(stop_reason, stop_reason),
        )

    def classify_error(
        self, status_code: int, payload: dict[str, Any], model: str
    ) -> GatewayError:
        error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
        message = error.get("message") or f"HTTP {status_code}"
        if error.get("type") in MODEL_UNAVAILABLE_TYPES:
            return ModelUnavailableError(message, model=model)
        return ProviderError(message, self.provider.value, status_code)

    async def complete(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> CompletionResult:
        """Buffered completion, running any requested tools internally.

        Each follow-up resends the conversation extended with the assistant
        tool_use turn and a user turn of tool_result blocks. After
        max_tool_rounds follow-ups, tools stay declared but further calls
        are forbidden.
        """
        conversation = list(conversation)
        max_tokens = clamp_max_tokens(model, max_tokens)
        usage = Usage()
        rounds = 0

        while True:
            choice: ToolChoice = tool_choice if rounds < self.max_tool_rounds else "none"
            request_data = self.build_request(
                conversation, model, max_tokens, tools_enabled, tool_choice=choice
            )
            result = self.parse_response(await self._post(request_data, model), model)
            usage = usage + result.usage

            if not (tools_enabled and choice == "auto" and result.tool_calls):
                break

            logger.info(f"{model} requested {len(result.tool_calls)} tool call(s)")
            tool_results = await self._tools.execute_all(result.tool_calls)
            conversation.append(
                Message(role="assistant", content=result.text, tool_calls=result.tool_calls)
            )
            conversation.extend(r.to_message() for r in tool_results)
            rounds += 1

        if result.tool_calls:
            logger.warning(f"Dropping {len(result.tool_calls)} tool call(s) past the round limit")
            result.tool_calls = []
        if not result.text.strip():
            logger.warning(f"Empty response from {model}, substituting placeholder")
            result.text = EMPTY_RESPONSE_PLACEHOLDER
        result.usage = usage
        return result


def create_messages_adapter(
    api_key: str | None,
    base_url: str = ANTHROPIC_API_URL,
    tools: ToolRegistry | None = None,
    temperature: float = 0.7,
    anthropic_version: str = ANTHROPIC_VERSION,
    max_tool_rounds: int = 1,
    timeout: float = 60.0,
    **client_kwargs: Any,
) -> MessagesAdapter:
    """Create a messages-style adapter with its own shared HTTP client.

    Args:
        api_key: Provider API key (None leaves the adapter unconfigured)
        base_url: API base URL
        tools: Tools the model may call
        temperature: Sampling temperature
        anthropic_version: Protocol version header
        max_tool_rounds: Internal tool follow-ups allowed per call
        timeout: Per-call timeout in seconds
        **client_kwargs: Retry settings passed to create_http_client

    Returns:
        Configured MessagesAdapter instance
    """
    client = create_http_client(base_url=base_url, timeout=timeout, **client_kwargs)
    return MessagesAdapter(
        client,
        api_key,
        tools=tools,
        temperature=temperature,
        anthropic_version=anthropic_version,
        max_tool_rounds=max_tool_rounds,
    )
