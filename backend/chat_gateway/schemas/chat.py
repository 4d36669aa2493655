"""Request/response bodies for the /chat endpoints.

Field names follow the camelCase JSON the chat UI sends. Snake_case
names are accepted too.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FunctionCall(BaseModel):
    """Function call details on a replayed assistant turn."""

    name: str
    arguments: str = "{}"  # JSON string


class ToolCall(BaseModel):
    """Tool call on a replayed assistant turn."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class ChatMessageIn(BaseModel):
    """One inbound conversation turn."""

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["system", "user", "assistant", "tool"]
    content: str | None = None
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_calls: list[ToolCall] | None = Field(default=None, alias="toolCalls")


class ChatRequestBody(BaseModel):
    """Body of POST /chat and POST /chat/stream.

    Only the types are checked here. Emptiness, defaults and ceilings
    are handled by RequestNormalizer so that callers get one descriptive
    400 instead of a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessageIn] = Field(default_factory=list)
    provider: str | None = None
    model: str | None = None
    response_style: Literal["concise", "detailed"] | None = Field(
        default=None, alias="responseStyle"
    )
    use_web_search: bool = Field(default=False, alias="useWebSearch")
    max_tokens: int | None = Field(default=None, alias="maxTokens")


class UsageOut(BaseModel):
    """Token usage with provider-neutral field names."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponseBody(BaseModel):
    """Body returned by POST /chat."""

    message: str
    model: str
    usage: UsageOut


class ModelOut(BaseModel):
    """Catalog entry exposed by GET /chat/providers."""

    id: str
    label: str
    max_tokens: int
    restricted: bool


class ProviderOut(BaseModel):
    """Provider capabilities exposed by GET /chat/providers."""

    id: str
    label: str
    default_model: str
    native_streaming: bool
    configured: bool
    models: list[ModelOut]


class ProvidersResponse(BaseModel):
    """Body returned by GET /chat/providers."""

    providers: list[ProviderOut]
    web_search_available: bool
    max_tool_rounds: int
