"""ChatGateway: one entry point wiring normalizer, fallback, tools and streaming."""

from collections.abc import AsyncGenerator, Mapping

from loguru import logger

from chat_gateway.errors import CredentialMissingError
from chat_gateway.models.catalog import FALLBACK_CHAINS, Provider
from chat_gateway.models.ir import CompletionResult, StreamEvent
from chat_gateway.schemas.chat import ChatRequestBody
from chat_gateway.services.fallback import ModelFallbackResolver
from chat_gateway.services.normalizer import NormalizedRequest, RequestNormalizer
from chat_gateway.services.providers.base import ProviderAdapter
from chat_gateway.services.stream_relay import StreamRelay
from chat_gateway.services.tool_loop import ToolExecutionLoop
from chat_gateway.services.tools.registry import ToolRegistry
from chat_gateway.services.tools.web_search import TOOL_NAME as WEB_SEARCH_TOOL


class ChatGateway:
    """Produces completions for normalized chat requests.

    Holds only shared, read-only collaborators: the adapters (and through
    them the HTTP clients) and the tool registry. Everything per request
    (resolver, loop, relay) is built fresh on each call.

    Args:
        adapters: One adapter per provider
        registry: Tools available to models
        normalizer: Request validation and preamble builder
        max_tool_rounds: Explicit bound on tool round-trips per request
        stream_timeout_seconds: Overall deadline for one streamed request
        fallback_chains: Fallback chains (catalog defaults when None)
    """

    def __init__(
        self,
        adapters: Mapping[Provider, ProviderAdapter],
        registry: ToolRegistry,
        normalizer: RequestNormalizer | None = None,
        max_tool_rounds: int = 1,
        stream_timeout_seconds: float = 120.0,
        fallback_chains: dict[str, list[str]] | None = None,
    ):
        self.adapters = dict(adapters)
        self.registry = registry
        self.normalizer = normalizer or RequestNormalizer()
        self.max_tool_rounds = max_tool_rounds
        self.stream_timeout_seconds = stream_timeout_seconds
        self.fallback_chains = FALLBACK_CHAINS if fallback_chains is None else fallback_chains

    @property
    def web_search_available(self) -> bool:
        return WEB_SEARCH_TOOL in self.registry

    def normalize(self, body: ChatRequestBody) -> NormalizedRequest:
        """Validate a request body. Raises ValidationError before any network call."""
        return self.normalizer.normalize(body, web_search_available=self.web_search_available)

    async def complete(self, body: ChatRequestBody) -> CompletionResult:
        """Buffered completion.

        Raises:
            ValidationError: Malformed request
            CredentialMissingError: Provider has no API key
            ModelUnavailableError: The whole fallback chain was unavailable
            ProviderError: Any other provider failure
        """
        request = self.normalize(body)
        loop = self._build_loop(request)
        logger.info(
            f"Chat request: provider={request.provider.value}, model={request.model}, "
            f"messages={len(request.conversation) - 1}, web_search={request.use_web_search}"
        )

        match request.provider:
            case Provider.COMPLETIONS:
                result = await loop.run(
                    request.conversation, request.max_tokens, request.use_web_search
                )
            case Provider.MESSAGES:
                # Tool follow-ups happen inside the adapter
                result = await loop.resolver.invoke(
                    lambda model: loop.adapter.complete(
                        request.conversation, model, request.max_tokens, request.use_web_search
                    )
                )

        result.resolved_model = result.resolved_model or loop.resolver.active_model
        logger.info(
            f"Chat completed: model={result.resolved_model}, "
            f"tokens={result.usage.total_tokens}"
        )
        return result

    def stream(self, body: ChatRequestBody) -> AsyncGenerator[StreamEvent, None]:
        """Streamed completion.

        Validation and the credential check run eagerly so a bad request
        fails before the stream starts. Every later failure becomes a
        terminal StreamError event.
        """
        request = self.normalize(body)
        loop = self._build_loop(request)
        logger.info(
            f"Chat stream: provider={request.provider.value}, model={request.model}, "
            f"native={loop.adapter.native_streaming}"
        )
        relay = StreamRelay(loop.adapter, loop, timeout_seconds=self.stream_timeout_seconds)
        return relay.relay(request.conversation, request.max_tokens, request.use_web_search)

    def _build_loop(self, request: NormalizedRequest) -> ToolExecutionLoop:
        adapter = self.adapters[request.provider]
        if not adapter.is_configured:
            raise CredentialMissingError(request.provider.value)
        return ToolExecutionLoop(
            adapter,
            self.registry,
            ModelFallbackResolver(request.model, self.fallback_chains),
            max_tool_rounds=self.max_tool_rounds,
        )
