"""Middleware components for the Chat Gateway."""

from chat_gateway.middleware.timeout import with_timeout

__all__ = ["with_timeout"]
