"""Tests for normalized streaming."""

import asyncio
import json
from typing import Any

import pytest
from conftest import MockUpstream, messages_payload

from chat_gateway.models.ir import (
    EMPTY_RESPONSE_PLACEHOLDER,
    ContentDelta,
    Done,
    Message,
    StreamError,
    StreamEvent,
)
from chat_gateway.services.fallback import ModelFallbackResolver
from chat_gateway.services.providers import CompletionsAdapter, MessagesAdapter
from chat_gateway.services.stream_relay import StreamRelay, ToolCallAccumulator
from chat_gateway.services.tool_loop import ToolExecutionLoop
from chat_gateway.services.tools import ToolRegistry

CONVERSATION = [Message("system", "sys"), Message("user", "hello")]
MODEL = "gpt-4o-mini-2024-07-18"


def content_frame(text: str) -> dict[str, Any]:
    return {"model": MODEL, "choices": [{"index": 0, "delta": {"content": text}}]}


def tool_frame(fragment: dict[str, Any]) -> dict[str, Any]:
    return {"model": MODEL, "choices": [{"index": 0, "delta": {"tool_calls": [fragment]}}]}


def usage_frame(prompt: int, completion: int) -> dict[str, Any]:
    return {
        "model": MODEL,
        "choices": [],
        "usage": {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        },
    }


def make_relay(
    adapter, registry: ToolRegistry, model: str = "gpt-4o-mini", **kwargs
) -> StreamRelay:
    loop = ToolExecutionLoop(adapter, registry, ModelFallbackResolver(model))
    return StreamRelay(adapter, loop, **kwargs)


async def collect(relay: StreamRelay, tools_enabled: bool = False) -> list[StreamEvent]:
    return [event async for event in relay.relay(CONVERSATION, 1000, tools_enabled)]


class TestToolCallAccumulator:
    def test_concatenates_argument_fragments_by_index(self) -> None:
        pending = ToolCallAccumulator()
        pending.add(
            [{"index": 0, "id": "call_1", "function": {"name": "web_search", "arguments": ""}}]
        )
        pending.add([{"index": 0, "function": {"arguments": '{"que'}}])
        pending.add([{"index": 1, "id": "call_2", "function": {"name": "web_search"}}])
        pending.add([{"index": 0, "function": {"arguments": 'ry": "x"}'}}])

        calls = pending.calls()

        assert [c.id for c in calls] == ["call_1", "call_2"]
        assert calls[0].arguments() == {"query": "x"}
        assert calls[1].arguments_json == "{}"

    def test_empty_is_falsy(self) -> None:
        assert not ToolCallAccumulator()


class TestNativeRelay:
    """Tests for frame-by-frame relaying from the completions-style provider."""

    async def test_deltas_then_done_in_order(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_sse([content_frame("hi"), content_frame(" there"), usage_frame(9, 2)])

        events = await collect(make_relay(completions_adapter, registry))

        assert events[:2] == [ContentDelta("hi"), ContentDelta(" there")]
        assert len(events) == 3
        done = events[2]
        assert isinstance(done, Done)
        assert done.result.text == "hi there"
        assert done.to_dict() == {
            "type": "done",
            "model": MODEL,
            "usage": {"prompt_tokens": 9, "completion_tokens": 2, "total_tokens": 11},
        }

    async def test_stream_request_asks_for_usage(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_sse([content_frame("hi")])

        await collect(make_relay(completions_adapter, registry))

        assert upstream.bodies[0]["stream"] is True
        assert upstream.bodies[0]["stream_options"] == {"include_usage": True}

    async def test_split_tool_call_runs_once_then_streams_answer(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
        search_calls: list,
    ) -> None:
        upstream.queue_sse(
            [
                tool_frame(
                    {
                        "index": 0,
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "web_search", "arguments": ""},
                    }
                ),
                tool_frame({"index": 0, "function": {"arguments": '{"query": '}}),
                tool_frame({"index": 0, "function": {"arguments": '"latest news"}'}}),
                usage_frame(20, 6),
            ]
        )
        upstream.queue_sse([content_frame("Here"), content_frame(" it is"), usage_frame(60, 3)])

        events = await collect(make_relay(completions_adapter, registry), tools_enabled=True)

        assert search_calls == [{"query": "latest news"}]
        assert upstream.call_count == 2
        assert upstream.bodies[1]["tool_choice"] == "none"
        assert upstream.bodies[1]["messages"][-1]["tool_call_id"] == "call_1"

        assert events[:2] == [ContentDelta("Here"), ContentDelta(" it is")]
        done = events[-1]
        assert isinstance(done, Done)
        assert done.result.usage.total_tokens == 89

    async def test_tool_call_in_final_round_is_dropped(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
        search_calls: list,
    ) -> None:
        call = {"index": 0, "id": "call_1", "function": {"name": "web_search", "arguments": "{}"}}
        upstream.queue_sse([tool_frame(call)])
        upstream.queue_sse([tool_frame({**call, "id": "call_2"})])

        events = await collect(make_relay(completions_adapter, registry), tools_enabled=True)

        assert upstream.call_count == 2
        assert len(search_calls) == 1
        assert len(events) == 2
        assert events[0] == ContentDelta(EMPTY_RESPONSE_PLACEHOLDER)
        assert isinstance(events[1], Done)
        assert events[1].result.text == EMPTY_RESPONSE_PLACEHOLDER

    async def test_provider_error_before_first_frame(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_json({"error": {"message": "Rate limit reached"}}, status_code=429)

        events = await collect(make_relay(completions_adapter, registry))

        assert events == [StreamError("Rate limit reached")]

    async def test_unavailable_model_falls_back_before_first_frame(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_json(
            {"error": {"code": "model_not_found", "message": "missing"}}, status_code=404
        )
        upstream.queue_sse([content_frame("hi")])

        events = await collect(make_relay(completions_adapter, registry, model="gpt-4o"))

        assert [body["model"] for body in upstream.bodies] == ["gpt-4o", "gpt-4o-mini"]
        assert events[0] == ContentDelta("hi")
        assert isinstance(events[-1], Done)

    async def test_missing_done_marker_ends_with_error(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_sse([content_frame("hi")], done=False)

        events = await collect(make_relay(completions_adapter, registry))

        assert events[0] == ContentDelta("hi")
        assert isinstance(events[1], StreamError)
        assert "closed before completion" in events[1].message
        assert len(events) == 2

    @pytest.mark.parametrize(
        "frame",
        [
            {"model": MODEL, "choices": [None]},
            {"model": MODEL, "choices": "oops"},
            {"model": MODEL, "choices": [{"index": 0, "delta": "hi"}]},
            {"model": MODEL, "choices": [{"index": 0, "delta": {"content": ["hi"]}}]},
            {"model": MODEL, "choices": [{"index": 0, "delta": {"tool_calls": [None]}}]},
            {"model": MODEL, "choices": [], "usage": 12},
        ],
    )
    async def test_malformed_frame_ends_with_error(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
        frame: dict[str, Any],
    ) -> None:
        upstream.queue_sse([frame])

        events = await collect(make_relay(completions_adapter, registry), tools_enabled=True)

        assert len(events) == 1
        assert isinstance(events[0], StreamError)
        assert "malformed frame" in events[0].message

    async def test_malformed_frame_after_content_keeps_earlier_deltas(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_sse([content_frame("hi"), {"model": MODEL, "choices": [None]}])

        events = await collect(make_relay(completions_adapter, registry))

        assert events[0] == ContentDelta("hi")
        assert isinstance(events[1], StreamError)
        assert len(events) == 2

    async def test_timeout_ends_with_error(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        class SlowAdapter(CompletionsAdapter):
            async def stream(self, *args, **kwargs):
                yield content_frame("hi")
                await asyncio.sleep(10)

        adapter = SlowAdapter(upstream.client(), "sk-test", tools=registry)

        events = await collect(make_relay(adapter, registry, timeout_seconds=0.05))

        assert events == [ContentDelta("hi"), StreamError("Request timed out after 0.05 seconds")]

    async def test_events_serialize_as_json_objects(
        self,
        completions_adapter: CompletionsAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_sse([content_frame("hi")])

        events = await collect(make_relay(completions_adapter, registry))

        payloads = [json.loads(json.dumps(e.to_dict())) for e in events]
        assert payloads[0] == {"type": "content", "content": "hi"}
        assert payloads[-1]["type"] == "done"


class TestEmulatedRelay:
    """Tests for streaming emulated from a buffered completion."""

    async def test_single_delta_then_done(
        self,
        messages_adapter: MessagesAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_json(messages_payload("hi there"))

        events = await collect(make_relay(messages_adapter, registry, model="claude-sonnet-4-5"))

        assert events[0] == ContentDelta("hi there")
        assert isinstance(events[1], Done)
        assert events[1].result.resolved_model == "claude-sonnet-4-5-20250929"
        assert len(events) == 2

    async def test_provider_error_becomes_stream_error(
        self,
        messages_adapter: MessagesAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_json(
            {"type": "error", "error": {"type": "api_error", "message": "Internal error"}},
            status_code=500,
        )

        events = await collect(make_relay(messages_adapter, registry, model="claude-sonnet-4-5"))

        assert events == [StreamError("Internal error")]

    async def test_goes_through_adapter_stream_handle(
        self,
        messages_adapter: MessagesAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        opened: list[str] = []

        class RecordingAdapter(MessagesAdapter):
            def stream(self, conversation, model, *args, **kwargs):
                opened.append(model)
                return super().stream(conversation, model, *args, **kwargs)

        adapter = RecordingAdapter(upstream.client(), "sk-ant", tools=registry)
        upstream.queue_json(messages_payload("hi"))

        events = await collect(make_relay(adapter, registry, model="claude-sonnet-4-5"))

        assert opened == ["claude-sonnet-4-5"]
        assert events[0] == ContentDelta("hi")
        assert isinstance(events[1], Done)

    async def test_unavailable_model_falls_back(
        self,
        messages_adapter: MessagesAdapter,
        registry: ToolRegistry,
        upstream: MockUpstream,
    ) -> None:
        upstream.queue_json(
            {"type": "error", "error": {"type": "not_found_error", "message": "model: missing"}},
            status_code=404,
        )
        upstream.queue_json(messages_payload("fallback answer"))

        events = await collect(make_relay(messages_adapter, registry, model="claude-sonnet-4-5"))

        assert upstream.call_count == 2
        assert [body["model"] for body in upstream.bodies] == [
            "claude-sonnet-4-5",
            "claude-sonnet-4-5-20250929",
        ]
        assert events[0] == ContentDelta("fallback answer")
        assert isinstance(events[1], Done)


async def test_closing_relay_early_closes_upstream(
    completions_adapter: CompletionsAdapter, registry: ToolRegistry, upstream: MockUpstream
) -> None:
    upstream.queue_sse([content_frame("a"), content_frame("b"), content_frame("c")])

    stream = make_relay(completions_adapter, registry).relay(CONVERSATION, 1000, False)
    assert await anext(stream) == ContentDelta("a")
    await stream.aclose()

    with pytest.raises(StopAsyncIteration):
        await anext(stream)
