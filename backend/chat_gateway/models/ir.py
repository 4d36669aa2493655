"""Provider-neutral types that flow through the gateway.

RequestNormalizer builds a list of Message, a ProviderAdapter turns it into
a wire request and parses the wire response back into a CompletionResult,
and StreamRelay emits StreamEvents. Everything here is request-scoped.

All types are simple dataclasses for minimal overhead and serialization ease.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from chat_gateway.errors.exceptions import ValidationError

Role = Literal["system", "user", "assistant", "tool"]

EMPTY_RESPONSE_PLACEHOLDER = (
    "The model returned an empty response. This can happen with complex requests. "
    "Please try again or simplify your question."
)

# -- Conversation --------------------------------------------------------------


@dataclass
class ToolCallRequest:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments_json: str = "{}"

    def arguments(self) -> dict[str, Any]:
        """Decode the JSON arguments.

        Raises:
            ValueError: If the arguments are not a JSON object
        """
        if not self.arguments_json.strip():
            return {}
        decoded = json.loads(self.arguments_json)
        if not isinstance(decoded, dict):
            raise ValueError("tool arguments must be a JSON object")
        return decoded


@dataclass
class Message:
    """One conversation turn.

    Assistant turns may carry tool_calls. Tool turns must carry the
    tool_call_id they answer.
    """

    role: Role
    content: str
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)


@dataclass
class ToolResult:
    """Output of one executed tool call."""

    tool_call_id: str
    content: str

    def to_message(self) -> Message:
        return Message(role="tool", content=self.content, tool_call_id=self.tool_call_id)


def validate_tool_references(messages: list[Message]) -> None:
    """Check that every tool turn answers the assistant turn right before it.

    Several tool turns may follow one assistant turn, each answering a
    different requested call.

    Raises:
        ValidationError: On an orphaned or mismatched tool turn
    """
    pending: set[str] = set()
    for index, message in enumerate(messages):
        if message.role == "tool":
            if not message.tool_call_id:
                raise ValidationError(f"messages[{index}]: tool message requires toolCallId")
            if message.tool_call_id not in pending:
                raise ValidationError(
                    f"messages[{index}]: toolCallId '{message.tool_call_id}' was not "
                    f"requested by the preceding assistant turn"
                )
            pending.discard(message.tool_call_id)
        elif message.role == "assistant":
            pending = {call.id for call in message.tool_calls}
        else:
            pending = set()


# -- Output --------------------------------------------------------------------


@dataclass
class Usage:
    """Token usage normalized across providers."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class CompletionResult:
    """Normalized result of one adapter invocation (or of a whole gateway call)."""

    text: str
    usage: Usage = field(default_factory=Usage)
    resolved_model: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# -- Stream events -------------------------------------------------------------


@dataclass
class ContentDelta:
    """Incremental text fragment."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "content", "content": self.text}


@dataclass
class Done:
    """Terminal event of a successful stream."""

    result: CompletionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "done",
            "model": self.result.resolved_model,
            "usage": self.result.usage.to_dict(),
        }


@dataclass
class StreamError:
    """Terminal event of a failed stream."""

    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "error", "error": self.message}


StreamEvent = ContentDelta | Done | StreamError
