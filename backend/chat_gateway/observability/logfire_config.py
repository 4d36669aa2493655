"""Tracing for gateway requests and upstream calls.

create_app() calls configure_logfire() before building the app, so spans
from instrument_httpx() cover every provider, search and page-fetch request.
Spans are exported only when a Logfire token is available.
"""

import os
from typing import TYPE_CHECKING, Literal

import logfire
from loguru import logger

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import FastAPI

DISABLE_ENV = "CHAT_GATEWAY_DISABLE_TELEMETRY"

_configured = False


def telemetry_disabled() -> bool:
    return os.environ.get(DISABLE_ENV, "").lower() in ("true", "1", "yes")


def configure_logfire(
    service_name: str = "chat-gateway",
    service_version: str | None = None,
) -> None:
    """Set up logfire once per process.

    Setting CHAT_GATEWAY_DISABLE_TELEMETRY keeps spans local even when a
    token is present.
    """
    global _configured
    if _configured:
        return

    send_to_logfire: bool | Literal["if-token-present"] = (
        False if telemetry_disabled() else "if-token-present"
    )
    logfire.configure(
        service_name=service_name,
        service_version=service_version,
        send_to_logfire=send_to_logfire,
    )
    _configured = True
    logger.info(f"Tracing configured for {service_name} (export={send_to_logfire})")


def instrument_fastapi(app: "FastAPI") -> None:
    """Trace every /chat and /health request handled by the app."""
    logfire.instrument_fastapi(app)
    logger.info("Tracing gateway routes")


def instrument_httpx() -> None:
    """Trace outgoing requests from every httpx client in the process."""
    logfire.instrument_httpx()
    logger.info("Tracing upstream HTTP calls")
