"""Provider adapter contract and shared HTTP plumbing."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any, Literal

import httpx
from loguru import logger

from chat_gateway.errors import (
    CredentialMissingError,
    GatewayError,
    ProviderError,
    StreamTransportError,
)
from chat_gateway.models.catalog import Provider, clamp_max_tokens
from chat_gateway.models.ir import CompletionResult, Message
from chat_gateway.services.tools.registry import ToolRegistry

ToolChoice = Literal["auto", "none"]

# Decoded provider frames when streaming natively, else one buffered result
StreamHandle = AsyncIterator[dict[str, Any]] | AsyncIterator[CompletionResult]


class ProviderAdapter(ABC):
    """Converts a provider-neutral conversation into one provider's wire format.

    Subclasses implement request building, response parsing and error
    classification. The HTTP client is injected and shared; the API key is
    attached per request and never logged.

    Attributes:
        provider: Which wire protocol this adapter speaks
        native_streaming: True when the provider streams incrementally,
            False when streaming is emulated from a buffered completion
    """

    provider: Provider
    native_streaming: bool = False
    endpoint: str

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None,
        tools: ToolRegistry | None = None,
        temperature: float = 0.7,
    ):
        self._client = client
        self._api_key = api_key  # Keep private, don't log
        self._tools = tools or ToolRegistry()
        self.temperature = temperature

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @abstractmethod
    def _build_headers(self) -> dict[str, str]:
        """Build request headers. Subclasses implement auth-specific headers."""

    @abstractmethod
    def build_request(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool,
        stream: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        """Serialize a conversation into this provider's request body.

        When tools_enabled, the registry's tools are declared and tool_choice
        says whether the model may call them. "none" keeps the declarations,
        which providers require once the conversation carries tool traffic,
        while forbidding further calls.
        """

    @abstractmethod
    def parse_response(self, payload: dict[str, Any], model: str) -> CompletionResult:
        """Parse a buffered response body into a CompletionResult."""

    @abstractmethod
    def classify_error(
        self, status_code: int, payload: dict[str, Any], model: str
    ) -> GatewayError:
        """Map a non-2xx response onto the gateway error taxonomy."""

    async def complete(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> CompletionResult:
        """One buffered round-trip."""
        request_data = self.build_request(
            conversation,
            model,
            clamp_max_tokens(model, max_tokens),
            tools_enabled,
            tool_choice=tool_choice,
        )
        payload = await self._post(request_data, model)
        return self.parse_response(payload, model)

    def stream(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool = False,
        tool_choice: ToolChoice = "auto",
    ) -> StreamHandle:
        """Open a stream for one invocation.

        Natively streaming adapters override this and yield decoded provider
        frames. The default emulates streaming: nothing is sent until the
        stream is iterated, then the buffered CompletionResult is its only item.
        """
        return self._emulated_stream(conversation, model, max_tokens, tools_enabled, tool_choice)

    async def _emulated_stream(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool,
        tool_choice: ToolChoice,
    ) -> AsyncGenerator[CompletionResult, None]:
        yield await self.complete(
            conversation, model, max_tokens, tools_enabled, tool_choice=tool_choice
        )

    async def invoke(
        self,
        conversation: list[Message],
        model: str,
        max_tokens: int,
        tools_enabled: bool = False,
        streaming: bool = False,
    ) -> CompletionResult | StreamHandle:
        """Common contract: buffered result, or a stream handle when streaming.

        Check `native_streaming` to know what the handle yields.
        """
        if streaming:
            return self.stream(conversation, model, max_tokens, tools_enabled)
        return await self.complete(conversation, model, max_tokens, tools_enabled)

    def _require_credentials(self) -> None:
        if not self._api_key:
            raise CredentialMissingError(self.provider.value)

    async def _post(self, request_data: dict[str, Any], model: str) -> dict[str, Any]:
        """POST a JSON request and return the decoded body."""
        self._require_credentials()
        logger.info(f"{self.provider.value} request: model={model}, stream=False")

        try:
            response = await self._client.post(
                self.endpoint, json=request_data, headers=self._build_headers()
            )
        except httpx.TimeoutException:
            raise ProviderError(
                f"{self.provider.value} provider timed out", self.provider.value, 504
            )
        except httpx.TransportError as e:
            raise ProviderError(
                f"{self.provider.value} provider is unreachable ({type(e).__name__})",
                self.provider.value,
            )

        if response.is_error:
            raise self._error_from_response(response, model)

        try:
            return response.json()
        except ValueError:
            raise ProviderError(
                f"{self.provider.value} provider returned a non-JSON body",
                self.provider.value,
                response.status_code,
            )

    async def _stream_lines(
        self, request_data: dict[str, Any], model: str
    ) -> AsyncGenerator[str, None]:
        """Streaming POST yielding raw response lines.

        Failures before the first line are classified like buffered calls.
        Transport failures after the stream opened raise StreamTransportError.
        """
        self._require_credentials()
        logger.info(f"{self.provider.value} request: model={model}, stream=True")

        try:
            async with self._client.stream(
                "POST", self.endpoint, json=request_data, headers=self._build_headers()
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise self._error_from_response(response, model)
                try:
                    async for line in response.aiter_lines():
                        yield line
                except httpx.TransportError as e:
                    raise StreamTransportError(
                        f"Upstream stream closed unexpectedly ({type(e).__name__})"
                    )
        except httpx.TimeoutException:
            raise ProviderError(
                f"{self.provider.value} provider timed out", self.provider.value, 504
            )
        except httpx.TransportError as e:
            raise ProviderError(
                f"{self.provider.value} provider is unreachable ({type(e).__name__})",
                self.provider.value,
            )

    def _error_from_response(self, response: httpx.Response, model: str) -> GatewayError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        error = self.classify_error(response.status_code, payload, model)
        logger.warning(
            f"{self.provider.value} returned HTTP {response.status_code} for {model}: "
            f"{type(error).__name__}"
        )
        return error
