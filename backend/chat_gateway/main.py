"""Chat Gateway - FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI
from loguru import logger

from chat_gateway import __version__
from chat_gateway.api import api_router
from chat_gateway.config import GatewaySettings, get_settings
from chat_gateway.errors import register_error_handlers
from chat_gateway.logging_config import intercept_standard_logging, setup_logging
from chat_gateway.models.catalog import Provider
from chat_gateway.services.gateway import ChatGateway
from chat_gateway.services.providers import (
    CompletionsAdapter,
    MessagesAdapter,
    create_http_client,
)
from chat_gateway.services.tools import ToolRegistry, WebFetchSanitizer, WebSearchTool

__all__ = ["build_gateway", "create_app"]


def build_gateway(settings: GatewaySettings) -> tuple[ChatGateway, list[httpx.AsyncClient]]:
    """Build the gateway and the shared HTTP clients it uses.

    One client per upstream, shared by every request. The caller owns the
    returned clients and must close them.

    Args:
        settings: Gateway settings

    Returns:
        The gateway and the clients to close on shutdown
    """
    retry = {"max_retries": settings.max_retries, "backoff_factor": settings.backoff_factor}
    completions_client = create_http_client(
        settings.openai_base_url, settings.provider_timeout_seconds, **retry
    )
    messages_client = create_http_client(
        settings.anthropic_base_url, settings.provider_timeout_seconds, **retry
    )
    clients = [completions_client, messages_client]

    registry = ToolRegistry()
    if settings.brave_search_api_key:
        search_client = create_http_client(timeout=settings.fetch_timeout_seconds * 2, **retry)
        fetch_client = create_http_client(
            timeout=settings.fetch_timeout_seconds,
            max_retries=0,
            follow_redirects=True,
        )
        clients += [search_client, fetch_client]
        search = WebSearchTool(
            search_client,
            settings.brave_search_api_key,
            WebFetchSanitizer(
                fetch_client,
                timeout_seconds=settings.fetch_timeout_seconds,
                max_chars=settings.fetch_max_chars,
            ),
            search_url=settings.brave_search_url,
            default_max_results=settings.search_max_results,
            fetch_concurrency=settings.fetch_concurrency,
        )
        registry.register(search.as_tool())
    else:
        logger.warning("No search API key configured, web_search tool disabled")

    adapters = {
        Provider.COMPLETIONS: CompletionsAdapter(
            completions_client,
            settings.openai_api_key,
            tools=registry,
            temperature=settings.default_temperature,
        ),
        Provider.MESSAGES: MessagesAdapter(
            messages_client,
            settings.anthropic_api_key,
            tools=registry,
            temperature=settings.default_temperature,
            anthropic_version=settings.anthropic_version,
            max_tool_rounds=settings.max_tool_rounds,
        ),
    }
    for provider, adapter in adapters.items():
        if not adapter.is_configured:
            logger.warning(f"No API key configured for provider '{provider.value}'")

    gateway = ChatGateway(
        adapters,
        registry,
        max_tool_rounds=settings.max_tool_rounds,
        stream_timeout_seconds=settings.request_timeout_seconds,
    )
    return gateway, clients


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the gateway on startup unless one was injected, close clients on shutdown."""
    logger.info("Chat Gateway starting...")
    clients: list[httpx.AsyncClient] = []
    if getattr(app.state, "gateway", None) is None:
        app.state.gateway, clients = build_gateway(app.state.settings)
    logger.info("Chat Gateway ready")

    yield

    logger.info("Chat Gateway shutting down...")
    for client in clients:
        await client.aclose()
    logger.info("Chat Gateway stopped")


def create_app(
    settings: GatewaySettings | None = None,
    gateway: ChatGateway | None = None,
) -> FastAPI:
    """Create the Chat Gateway FastAPI application.

    Args:
        settings: Settings to use instead of the environment
        gateway: Prebuilt gateway. When given, the lifespan builds no
                 clients (tests inject a gateway over mocked transports).

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()

    if settings.logfire_enabled:
        from chat_gateway.observability.logfire_config import (
            configure_logfire,
            instrument_httpx,
        )

        configure_logfire(service_version=__version__)
        instrument_httpx()

    app_instance = FastAPI(
        title="Chat Gateway",
        description="Normalized chat completions over completions- and messages-style providers",
        version=__version__,
        lifespan=lifespan,
    )
    app_instance.state.settings = settings
    app_instance.state.gateway = gateway

    # Register RFC 7807 error handlers
    register_error_handlers(app_instance)

    app_instance.include_router(api_router)

    if settings.logfire_enabled:
        from chat_gateway.observability.logfire_config import instrument_fastapi

        instrument_fastapi(app_instance)

    @app_instance.get("/health")
    async def health() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app_instance


# Lazy initialization for standalone app
# This ensures LogFire is not configured until the app is actually accessed
_app: FastAPI | None = None


def _get_standalone_app() -> FastAPI:
    """Get or create the standalone app instance."""
    global _app
    if _app is None:
        setup_logging()
        intercept_standard_logging()
        _app = create_app()
    return _app


def __getattr__(name: str) -> Any:
    """Lazy attribute access for module-level app (`chat_gateway.main:app`)."""
    if name == "app":
        return _get_standalone_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(_get_standalone_app(), host=settings.host, port=settings.port)
