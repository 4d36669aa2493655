"""Externally driven tool loop for the completions-style provider."""

from loguru import logger

from chat_gateway.models.ir import (
    EMPTY_RESPONSE_PLACEHOLDER,
    CompletionResult,
    Message,
    ToolCallRequest,
    Usage,
)
from chat_gateway.services.fallback import ModelFallbackResolver
from chat_gateway.services.providers.base import ProviderAdapter, ToolChoice
from chat_gateway.services.tools.registry import ToolRegistry


class ToolExecutionLoop:
    """Invoke, run requested tools, invoke again, at most max_tool_rounds times.

    Every invocation goes through the resolver, so a model that is
    unavailable falls back the same way on the first call and on follow-ups.
    Once the rounds are used up, the final invocation keeps the tools
    declared with tool_choice "none", and any tool calls it still returns
    are dropped.

    Args:
        adapter: Provider adapter to invoke
        registry: Tools available to the model
        resolver: Fallback resolver for this request
        max_tool_rounds: Extra round-trips allowed for tool calls
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        registry: ToolRegistry,
        resolver: ModelFallbackResolver,
        max_tool_rounds: int = 1,
    ):
        self.adapter = adapter
        self.registry = registry
        self.resolver = resolver
        self.max_tool_rounds = max_tool_rounds

    async def run(
        self,
        conversation: list[Message],
        max_tokens: int,
        tools_enabled: bool,
    ) -> CompletionResult:
        """Run the loop and return the final result.

        Args:
            conversation: System preamble plus history
            max_tokens: Requested max tokens (clamped per candidate model)
            tools_enabled: Whether to declare the registry's tools

        Returns:
            Final result with usage summed over every round-trip
        """
        conversation = list(conversation)
        tools_enabled = tools_enabled and self.max_tool_rounds > 0 and len(self.registry) > 0
        usage = Usage()
        rounds = 0

        while True:
            choice: ToolChoice = "auto" if rounds < self.max_tool_rounds else "none"
            result = await self.resolver.invoke(
                lambda model: self.adapter.complete(
                    conversation, model, max_tokens, tools_enabled, tool_choice=choice
                )
            )
            usage = usage + result.usage

            if not (tools_enabled and choice == "auto" and result.has_tool_calls):
                break

            conversation = await self.execute_tool_calls(
                conversation, result.text, result.tool_calls
            )
            rounds += 1

        if result.has_tool_calls:
            logger.warning(
                f"Dropping {len(result.tool_calls)} tool call(s) past the round limit"
            )
            result.tool_calls = []
        if not result.text.strip():
            logger.warning(f"Empty response from {result.resolved_model}, substituting placeholder")
            result.text = EMPTY_RESPONSE_PLACEHOLDER
        result.usage = usage
        result.resolved_model = result.resolved_model or self.resolver.active_model
        return result

    async def execute_tool_calls(
        self,
        conversation: list[Message],
        text: str,
        calls: list[ToolCallRequest],
    ) -> list[Message]:
        """Execute calls in order and return the extended conversation.

        The assistant turn carrying the calls is appended first, then one
        tool turn per call.
        """
        logger.info(f"Model requested {len(calls)} tool call(s): {[c.name for c in calls]}")
        results = await self.registry.execute_all(calls)
        return [
            *conversation,
            Message(role="assistant", content=text, tool_calls=list(calls)),
            *(r.to_message() for r in results),
        ]
