"""Normalized streaming: provider frames in, StreamEvents out."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Any

from loguru import logger

from chat_gateway.errors import GatewayError, StreamTransportError
from chat_gateway.models.ir import (
    EMPTY_RESPONSE_PLACEHOLDER,
    CompletionResult,
    ContentDelta,
    Done,
    Message,
    StreamError,
    StreamEvent,
    ToolCallRequest,
    Usage,
)
from chat_gateway.services.fallback import ModelFallbackResolver
from chat_gateway.services.providers.base import ProviderAdapter, ToolChoice
from chat_gateway.services.providers.completions import usage_from_completions
from chat_gateway.services.tool_loop import ToolExecutionLoop


def check_frame(frame: dict[str, Any]) -> None:
    """Raise StreamTransportError unless a decoded frame has the expected shape."""
    choices = frame.get("choices")
    if choices is not None and not (
        isinstance(choices, list) and all(isinstance(c, dict) for c in choices)
    ):
        raise StreamTransportError("Upstream stream sent a malformed frame (choices)")
    for chunk in choices or []:
        delta = chunk.get("delta")
        if delta is None:
            continue
        if not isinstance(delta, dict):
            raise StreamTransportError("Upstream stream sent a malformed frame (delta)")
        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise StreamTransportError("Upstream stream sent a malformed frame (content)")
        tool_calls = delta.get("tool_calls")
        if tool_calls is not None and not (
            isinstance(tool_calls, list)
            and all(
                isinstance(t, dict) and isinstance(t.get("function") or {}, dict)
                for t in tool_calls
            )
        ):
            raise StreamTransportError("Upstream stream sent a malformed frame (tool_calls)")
    usage = frame.get("usage")
    if usage is not None and not isinstance(usage, dict):
        raise StreamTransportError("Upstream stream sent a malformed frame (usage)")


class ToolCallAccumulator:
    """Reassembles tool calls whose fields arrive split across stream frames.

    Fragments are keyed by their `index`. The id and name arrive once; the
    JSON arguments arrive as string pieces to concatenate.
    """

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, Any]] = {}

    def add(self, fragments: list[dict[str, Any]]) -> None:
        for fragment in fragments:
            index = fragment.get("index", 0)
            call = self._calls.setdefault(index, {"id": "", "name": "", "arguments": []})
            if fragment.get("id"):
                call["id"] = fragment["id"]
            function = fragment.get("function") or {}
            if function.get("name"):
                call["name"] = function["name"]
            if function.get("arguments"):
                call["arguments"].append(function["arguments"])

    def __bool__(self) -> bool:
        return bool(self._calls)

    def calls(self) -> list[ToolCallRequest]:
        return [
            ToolCallRequest(
                id=call["id"],
                name=call["name"],
                arguments_json="".join(call["arguments"]) or "{}",
            )
            for _, call in sorted(self._calls.items())
        ]


class StreamRelay:
    """Produces StreamEvents for one request, one frame ahead of the consumer.

    Natively streaming adapters are relayed frame by frame. A tool call
    found in the stream is executed through the ToolExecutionLoop and a new
    stream is opened for the follow-up. Adapters without native streaming
    are emulated: the buffered result becomes one ContentDelta.

    Every stream ends with exactly one Done or StreamError. Closing the
    relay early closes the upstream connection.

    Args:
        adapter: Provider adapter to stream from
        loop: Tool loop for this request (also holds the resolver)
        timeout_seconds: Overall deadline for the whole stream
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        loop: ToolExecutionLoop,
        timeout_seconds: float = 120.0,
    ):
        self.adapter = adapter
        self.loop = loop
        self.timeout_seconds = timeout_seconds

    @property
    def resolver(self) -> ModelFallbackResolver:
        return self.loop.resolver

    async def relay(
        self,
        conversation: list[Message],
        max_tokens: int,
        tools_enabled: bool,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Yield events until Done or StreamError."""
        deadline = asyncio.get_running_loop().time() + self.timeout_seconds
        source = (
            self._relay_native(conversation, max_tokens, tools_enabled)
            if self.adapter.native_streaming
            else self._relay_emulated(conversation, max_tokens, tools_enabled)
        )

        async with aclosing(source) as events:
            while True:
                try:
                    # Deadline applies only while producing, not while the consumer writes
                    async with asyncio.timeout_at(deadline):
                        event = await anext(events)
                except StopAsyncIteration:
                    return
                except TimeoutError:
                    logger.warning(f"Stream timed out after {self.timeout_seconds}s")
                    yield StreamError(
                        f"Request timed out after {self.timeout_seconds:g} seconds"
                    )
                    return
                except GatewayError as e:
                    logger.warning(f"Stream failed: {type(e).__name__}: {e.message}")
                    yield StreamError(e.message)
                    return
                yield event

    async def _relay_emulated(
        self,
        conversation: list[Message],
        max_tokens: int,
        tools_enabled: bool,
    ) -> AsyncGenerator[StreamEvent, None]:
        # Emulated handles yield a single buffered CompletionResult
        results = self.resolver.stream(
            lambda model: self.adapter.stream(conversation, model, max_tokens, tools_enabled)
        )
        async with aclosing(results):
            async for result in results:
                result.resolved_model = result.resolved_model or self.resolver.active_model
                yield ContentDelta(result.text)
                yield Done(result)

    async def _relay_native(
        self,
        conversation: list[Message],
        max_tokens: int,
        tools_enabled: bool,
    ) -> AsyncGenerator[StreamEvent, None]:
        max_rounds = self.loop.max_tool_rounds
        tools_enabled = tools_enabled and max_rounds > 0 and len(self.loop.registry) > 0
        usage = Usage()
        resolved_model = ""
        answer: list[str] = []
        rounds = 0

        while True:
            choice: ToolChoice = "auto" if rounds < max_rounds else "none"
            text_parts: list[str] = []
            pending = ToolCallAccumulator()

            frames = self.resolver.stream(
                lambda model: self.adapter.stream(
                    conversation, model, max_tokens, tools_enabled, tool_choice=choice
                )
            )
            async with aclosing(frames):
                async for frame in frames:
                    check_frame(frame)
                    resolved_model = frame.get("model") or resolved_model
                    if frame.get("usage"):
                        usage = usage + usage_from_completions(frame["usage"])
                    for chunk in frame.get("choices") or []:
                        delta = chunk.get("delta") or {}
                        if delta.get("content"):
                            text_parts.append(delta["content"])
                            yield ContentDelta(delta["content"])
                        if delta.get("tool_calls"):
                            pending.add(delta["tool_calls"])

            answer.extend(text_parts)
            if not (tools_enabled and choice == "auto" and pending):
                break

            conversation = await self.loop.execute_tool_calls(
                conversation, "".join(text_parts), pending.calls()
            )
            rounds += 1

        if pending:
            logger.warning(
                f"Dropping {len(pending.calls())} streamed tool call(s) past the round limit"
            )
        if not "".join(answer).strip():
            logger.warning(f"Empty stream from {resolved_model or self.resolver.active_model}")
            answer.append(EMPTY_RESPONSE_PLACEHOLDER)
            yield ContentDelta(EMPTY_RESPONSE_PLACEHOLDER)

        yield Done(
            CompletionResult(
                text="".join(answer),
                usage=usage,
                resolved_model=resolved_model or self.resolver.active_model,
            )
        )
