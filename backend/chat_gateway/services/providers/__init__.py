"""Provider adapters for the two supported wire protocols."""

from chat_gateway.services.providers.base import ProviderAdapter, ToolChoice
from chat_gateway.services.providers.client import create_http_client
from chat_gateway.services.providers.completions import (
    CompletionsAdapter,
    create_completions_adapter,
)
from chat_gateway.services.providers.messages import (
    MessagesAdapter,
    create_messages_adapter,
)

__all__ = [
    "CompletionsAdapter",
    "MessagesAdapter",
    "ProviderAdapter",
    "ToolChoice",
    "create_completions_adapter",
    "create_http_client",
    "create_messages_adapter",
]
