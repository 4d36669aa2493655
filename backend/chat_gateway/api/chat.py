"""Chat endpoints: buffered, streamed, and provider capabilities."""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from chat_gateway.config import GatewaySettings
from chat_gateway.middleware import with_timeout
from chat_gateway.models.catalog import (
    DEFAULT_MODELS,
    MODELS,
    PROVIDER_LABELS,
    Provider,
    is_restricted_model,
    max_tokens_ceiling,
)
from chat_gateway.schemas.chat import (
    ChatRequestBody,
    ChatResponseBody,
    ModelOut,
    ProviderOut,
    ProvidersResponse,
    UsageOut,
)
from chat_gateway.services.gateway import ChatGateway

router = APIRouter(prefix="/chat", tags=["chat"])


def get_gateway(request: Request) -> ChatGateway:
    """The gateway built by the application lifespan."""
    return request.app.state.gateway


def get_gateway_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings


@router.post("", response_model=ChatResponseBody)
async def chat(
    body: ChatRequestBody,
    gateway: ChatGateway = Depends(get_gateway),
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> ChatResponseBody:
    """Buffered chat completion.

    The whole call, tool round-trips included, runs under the overall
    request deadline.
    """
    complete = with_timeout(settings.request_timeout_seconds)(gateway.complete)
    result = await complete(body)
    return ChatResponseBody(
        message=result.text,
        model=result.resolved_model,
        usage=UsageOut(**result.usage.to_dict()),
    )


@router.post("/stream", response_model=None)
async def chat_stream(
    body: ChatRequestBody,
    gateway: ChatGateway = Depends(get_gateway),
) -> EventSourceResponse:
    """Streamed chat completion as server-sent events.

    Each event's data is one JSON object: {"type": "content"}, then a
    terminal {"type": "done"} or {"type": "error"}. Request validation and
    missing credentials fail before the stream opens, as a problem response.
    """
    events = gateway.stream(body)

    async def event_generator() -> Any:
        async for event in events:
            yield {"data": json.dumps(event.to_dict())}
        logger.debug("Chat stream finished")

    return EventSourceResponse(event_generator())


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(
    gateway: ChatGateway = Depends(get_gateway),
) -> ProvidersResponse:
    """Providers, their models and capabilities. Never returns secrets."""
    providers = []
    for provider in Provider:
        adapter = gateway.adapters.get(provider)
        providers.append(
            ProviderOut(
                id=provider.value,
                label=PROVIDER_LABELS[provider],
                default_model=DEFAULT_MODELS[provider],
                native_streaming=bool(adapter and adapter.native_streaming),
                configured=bool(adapter and adapter.is_configured),
                models=[
                    ModelOut(
                        id=info.id,
                        label=info.label,
                        max_tokens=max_tokens_ceiling(info.id),
                        restricted=is_restricted_model(info.id),
                    )
                    for info in MODELS[provider]
                ],
            )
        )
    return ProvidersResponse(
        providers=providers,
        web_search_available=gateway.web_search_available,
        max_tool_rounds=gateway.max_tool_rounds,
    )
