"""Error handling for the Chat Gateway."""

from chat_gateway.errors.exceptions import (
    CredentialMissingError,
    GatewayError,
    ModelUnavailableError,
    ProviderError,
    StreamTransportError,
    ToolExecutionError,
    ValidationError,
)
from chat_gateway.errors.handlers import register_error_handlers
from chat_gateway.errors.problem_details import (
    ProblemDetail,
    TimeoutHTTPException,
    TimeoutProblem,
)

__all__ = [
    "GatewayError",
    "ValidationError",
    "CredentialMissingError",
    "ModelUnavailableError",
    "ProviderError",
    "ToolExecutionError",
    "StreamTransportError",
    "ProblemDetail",
    "TimeoutProblem",
    "TimeoutHTTPException",
    "register_error_handlers",
]
