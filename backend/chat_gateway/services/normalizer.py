"""Inbound request validation, defaults and system preamble."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Literal

from loguru import logger

from chat_gateway.errors import ValidationError
from chat_gateway.models.catalog import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODELS,
    PROVIDER_LABELS,
    Provider,
    clamp_max_tokens,
)
from chat_gateway.models.ir import Message, ToolCallRequest, validate_tool_references
from chat_gateway.schemas.chat import ChatRequestBody
from chat_gateway.services.providers.messages import ensure_user_first

ResponseStyle = Literal["concise", "detailed"]

WEB_SEARCH_INSTRUCTION = (
    "You can call the web_search tool. Prefer it for anything time-sensitive: "
    "current events, recent releases, prices, schedules or facts that may have "
    "changed after your training data. Cite the URLs you relied on."
)

STYLE_INSTRUCTIONS: dict[str, str] = {
    "concise": "Answer concisely. Lead with the answer and keep explanations brief.",
    "detailed": (
        "Answer in detail. Structure the response, explain your reasoning and "
        "include examples where they help."
    ),
}


@dataclass
class NormalizedRequest:
    """A validated request with every default resolved."""

    provider: Provider
    model: str
    max_tokens: int
    response_style: ResponseStyle
    use_web_search: bool
    conversation: list[Message]


class RequestNormalizer:
    """Validates and defaults a ChatRequestBody.

    Args:
        today: Clock used for the date in the system preamble
    """

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today

    def normalize(
        self,
        body: ChatRequestBody,
        web_search_available: bool = True,
    ) -> NormalizedRequest:
        """Build a NormalizedRequest.

        Args:
            body: Parsed request body
            web_search_available: Whether the web_search tool is registered

        Raises:
            ValidationError: On empty or malformed messages, unknown provider,
                non-positive maxTokens, or a messages-style conversation that
                does not start with a user turn
        """
        if not body.messages:
            raise ValidationError("messages must be a non-empty list")

        try:
            provider = Provider.parse(body.provider) if body.provider else Provider.COMPLETIONS
        except ValueError:
            raise ValidationError(
                f"Unknown provider '{body.provider}'. "
                f"Use one of: {', '.join(p.value for p in Provider)}"
            )

        model = (body.model or "").strip() or DEFAULT_MODELS[provider]
        requested_tokens = body.max_tokens if body.max_tokens is not None else DEFAULT_MAX_TOKENS
        if requested_tokens <= 0:
            raise ValidationError("maxTokens must be a positive integer")
        max_tokens = clamp_max_tokens(model, requested_tokens)
        if max_tokens < requested_tokens:
            logger.debug(f"Clamped maxTokens {requested_tokens} -> {max_tokens} for {model}")

        style: ResponseStyle = body.response_style or "concise"

        use_web_search = body.use_web_search
        if use_web_search and not web_search_available:
            logger.warning("Web search requested but no search API key is configured")
            use_web_search = False

        history = self._convert_messages(body)
        validate_tool_references(history)
        if provider is Provider.MESSAGES:
            ensure_user_first(history)

        preamble = self.build_preamble(provider, model, style, use_web_search)
        return NormalizedRequest(
            provider=provider,
            model=model,
            max_tokens=max_tokens,
            response_style=style,
            use_web_search=use_web_search,
            conversation=[Message(role="system", content=preamble), *history],
        )

    def build_preamble(
        self,
        provider: Provider,
        model: str,
        style: ResponseStyle,
        use_web_search: bool,
    ) -> str:
        """System preamble naming the model, the date and the answer style."""
        parts = [
            f"You are a helpful AI assistant running on {model} "
            f"via {PROVIDER_LABELS[provider]}.",
            f"Today's date is {self._today().isoformat()}.",
        ]
        if use_web_search:
            parts.append(WEB_SEARCH_INSTRUCTION)
        parts.append(STYLE_INSTRUCTIONS[style])
        return "\n\n".join(parts)

    @staticmethod
    def _convert_messages(body: ChatRequestBody) -> list[Message]:
        history: list[Message] = []
        for index, incoming in enumerate(body.messages):
            tool_calls = [
                ToolCallRequest(
                    id=call.id,
                    name=call.function.name,
                    arguments_json=call.function.arguments,
                )
                for call in incoming.tool_calls or []
            ]
            if incoming.content is None and not (incoming.role == "assistant" and tool_calls):
                raise ValidationError(f"messages[{index}]: content must be a string")
            if tool_calls and incoming.role != "assistant":
                raise ValidationError(f"messages[{index}]: only assistant turns carry toolCalls")
            history.append(
                Message(
                    role=incoming.role,
                    content=incoming.content or "",
                    tool_call_id=incoming.tool_call_id,
                    tool_calls=tool_calls,
                )
            )
        return history
